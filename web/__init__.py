"""Flask web layer: operator control surface and public viewer API."""

from web.app import create_app

__all__ = ["create_app"]
