"""Tests for Telegram notification formatting and delivery."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_event
from database.models import Contestant
from services.notification_service import NotificationService


def _bot(fail_for=()):
    bot = MagicMock()

    async def send_message(chat_id, text, parse_mode=None):
        if chat_id in fail_for:
            raise RuntimeError("chat not found")

    bot.send_message = AsyncMock(side_effect=send_message)
    return bot


@pytest.mark.asyncio
async def test_raffle_notifications_skip_contestants_without_chat():
    bot = _bot(fail_for={300})
    service = NotificationService(bot)
    contestants = [
        Contestant(id=1, event_id=1, display_name="Ann", telegram_id=100, raffle_position=1),
        Contestant(id=2, event_id=1, display_name="Bo", telegram_id=None, raffle_position=2),
        Contestant(id=3, event_id=1, display_name="Cy", telegram_id=300, raffle_position=3),
    ]

    delivered = await service.notify_raffle_selected(make_event(), contestants)

    assert delivered == 1
    assert bot.send_message.await_count == 2
    chat_id, text = bot.send_message.await_args_list[0].args
    assert chat_id == 100
    assert "Summer Showcase" in text
    assert "#1" in text


@pytest.mark.asyncio
async def test_winner_message_mentions_prize():
    bot = _bot()
    service = NotificationService(bot)
    winner = Contestant(id=1, event_id=1, display_name="Ann", telegram_id=100, vote_count=42)

    assert await service.notify_winner(make_event(), winner, "Studio session") is True

    text = bot.send_message.await_args.args[1]
    assert "42 votes" in text
    assert "Studio session" in text


@pytest.mark.asyncio
async def test_winner_without_chat_is_not_messaged():
    bot = _bot()
    service = NotificationService(bot)
    winner = Contestant(id=1, event_id=1, display_name="Ann")

    assert await service.notify_winner(make_event(), winner) is False
    bot.send_message.assert_not_awaited()
