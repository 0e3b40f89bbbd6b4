"""Tests for the Flask operator, viewer and raffle endpoints."""

import pytest

from conftest import BASE_TIME, make_config
from database import close_db_pool, init_db_pool, run_migrations
from services.async_runner import (
    run_coroutine_sync,
    start_background_loop,
    stop_background_loop,
    wait_background_tasks,
)
from services.featuring import FeaturedPlacementService
from services.live_event import LiveEventService
from services.lottery_service import RaffleManager
from services.roster import SQLiteRosterProvider
from services.viewer_presence import ViewerPresence
from web import create_app


async def _prepare_database(config):
    pool = await init_db_pool(config.database_path, config.db_pool_size, config.db_busy_timeout)
    await run_migrations(pool)


@pytest.fixture
def main_loop():
    loop, thread = start_background_loop()
    yield loop
    stop_background_loop(loop, thread)


@pytest.fixture
def app(tmp_path, main_loop, clock):
    config = make_config(tmp_path)
    run_coroutine_sync(_prepare_database(config))

    roster = SQLiteRosterProvider()
    viewers = ViewerPresence(ttl=config.viewer_session_ttl)
    featured = FeaturedPlacementService(clock=clock)
    live_events = LiveEventService(roster, features=featured, viewers=viewers, clock=clock)
    app = create_app(config, testing=True, services={
        "LIVE_EVENT_SERVICE": live_events,
        "RAFFLE_MANAGER": RaffleManager(roster, live_events, clock=clock),
        "VIEWER_PRESENCE": viewers,
        "FEATURED_SERVICE": featured,
    })
    yield app
    run_coroutine_sync(close_db_pool())


@pytest.fixture
def client(app):
    return app.test_client()


def _login(client):
    response = client.post("/operator/login", json={"username": "operator", "password": "s3cret"})
    assert response.status_code == 200


def _create_event(client, durations=(120, 90), **fields):
    body = {"title": "Summer Showcase", "eventDate": BASE_TIME.isoformat(), "capacity": 3}
    body.update(fields)
    response = client.post("/operator/events", json=body)
    assert response.status_code == 201
    event_id = response.get_json()["event"]["id"]
    for index, duration in enumerate(durations):
        added = client.post(
            f"/operator/events/{event_id}/contestants",
            json={"displayName": f"Act {index + 1}", "videoDuration": duration},
        )
        assert added.status_code == 201
    return event_id


def test_operator_commands_require_login(client):
    response = client.post("/operator/events/1/start")

    assert response.status_code == 401
    assert response.get_json()["error"] == "unauthenticated"


def test_login_flow(client):
    form = client.get("/operator/login").get_json()
    assert form["authenticated"] is False
    assert form["csrfToken"]

    rejected = client.post("/operator/login", json={"username": "operator", "password": "wrong"})
    assert rejected.status_code == 401
    assert rejected.get_json()["error"] == "unauthenticated"

    _login(client)
    assert client.get("/operator/").get_json()["operator"] == "operator"

    client.post("/operator/logout")
    assert client.get("/operator/").status_code == 401


def test_create_event_uses_configured_phase_minutes(client):
    _login(client)
    response = client.post("/operator/events", json={
        "title": "Late Show",
        "eventDate": BASE_TIME.isoformat(),
        "capacity": 4,
        "votingMinutes": 7,
    })

    assert response.status_code == 201
    phases = {phase["name"]: phase["duration"] for phase in response.get_json()["timeline"]["phases"]}
    assert phases["welcome"] == 5
    assert phases["voting"] == 7


def test_create_event_validation(client):
    _login(client)

    missing_title = client.post("/operator/events", json={"eventDate": BASE_TIME.isoformat(), "capacity": 3})
    assert missing_title.status_code == 400

    negative = client.post("/operator/events", json={
        "title": "x", "eventDate": BASE_TIME.isoformat(), "capacity": 3, "welcomeMinutes": -1,
    })
    assert negative.status_code == 400
    assert negative.get_json()["details"]["field"] == "welcomeMinutes"

    too_large = client.post("/operator/events", json={
        "title": "x", "eventDate": BASE_TIME.isoformat(), "capacity": 10_000,
    })
    assert too_large.status_code == 422


def test_timeline_lifecycle_and_error_mapping(client):
    _login(client)
    event_id = _create_event(client)
    assert client.post(f"/operator/events/{event_id}/reschedule").status_code == 200
    assert client.post(f"/operator/events/{event_id}/start").status_code == 200

    timeline = client.get(f"/api/events/{event_id}/timeline")
    assert timeline.status_code == 200
    assert timeline.headers["Cache-Control"] == "no-store"
    assert timeline.get_json()["currentPhase"]["name"] == "welcome"

    too_much = client.post(f"/operator/events/{event_id}/adjust", json={"deltaMinutes": -15})
    assert too_much.status_code == 422
    assert too_much.get_json()["details"]["limit"] == 5

    missing = client.post(f"/operator/events/{event_id}/adjust", json={})
    assert missing.status_code == 400
    assert missing.get_json()["error"] == "validation"

    assert client.post(f"/operator/events/{event_id}/pause").get_json()["isPaused"] is True
    blocked = client.post(f"/operator/events/{event_id}/jump", json={"phase": "voting"})
    assert blocked.status_code == 409
    assert blocked.get_json()["error"] == "invalid_state"

    assert client.post(f"/operator/events/{event_id}/resume").status_code == 200
    unknown_phase = client.post(f"/operator/events/{event_id}/jump", json={"phase": "intermission"})
    assert unknown_phase.status_code == 400

    entries = client.get(f"/operator/audit?eventId={event_id}").get_json()["entries"]
    actions = [entry["action"] for entry in entries]
    assert {"event_create", "reschedule", "start", "pause", "resume"} <= set(actions)
    assert "jump" not in actions
    assert all(entry["actor"] == "operator" for entry in entries)


def test_unknown_event_is_404(client):
    _login(client)
    response = client.post("/operator/events/999/start")

    assert response.status_code == 404
    assert response.get_json()["error"] == "not_found"
    assert client.get("/api/events/999/timeline").status_code == 404


def test_player_signals_walk_performances(client):
    _login(client)
    event_id = _create_event(client)
    client.post(f"/operator/events/{event_id}/reschedule")
    client.post(f"/operator/events/{event_id}/start")
    client.post(f"/operator/events/{event_id}/advance", json={"expectedPhase": "welcome"})

    first = client.post(f"/api/events/{event_id}/performances/advance", json={"expectedOrder": 0})
    assert first.get_json()["performance"]["order"] == 1

    stale = client.post(f"/api/events/{event_id}/performances/advance", json={"expectedOrder": 0})
    assert stale.get_json()["changed"] is False

    last = client.post(f"/api/events/{event_id}/performances/advance", json={"expectedOrder": 1})
    assert last.get_json()["phase"] == "commercial"

    noop = client.post(f"/api/events/{event_id}/commercials/complete")
    assert noop.status_code == 200


def test_viewer_presence(client):
    join_a = client.post("/api/events/1/viewers/join", json={"sessionId": "a"}).get_json()
    join_b = client.post("/api/events/1/viewers/join", json={"sessionId": "b"}).get_json()
    left = client.post("/api/events/1/viewers/leave", json={"sessionId": "a"}).get_json()

    assert join_a["count"] == 1
    assert join_b["count"] == 2
    assert join_b["peak"] == 2
    assert left["count"] == 1


def test_viewer_presence_falls_back_to_cookie_session(client):
    first = client.post("/api/events/1/viewers/join").get_json()
    again = client.post("/api/events/1/viewers/join").get_json()

    assert first["count"] == 1
    assert again["count"] == 1


def test_raffle_endpoints(client):
    _login(client)
    event_id = _create_event(client, durations=(60, 60, 60, 60), capacity=2)

    executed = client.post(f"/operator/events/{event_id}/raffle", json={"seed": "abc"})
    assert executed.status_code == 201
    assert len(executed.get_json()["selected"]) == 2

    results = client.get(f"/api/raffles/{event_id}")
    assert results.status_code == 200
    assert results.get_json()["seed"] == "abc"
    assert results.headers["Cache-Control"] == "public, max-age=30"

    verification = client.get(f"/api/raffles/{event_id}/verify").get_json()
    assert verification["verified"] is True
    assert verification["entrantCount"] == 4

    status = client.get(f"/api/raffles/{event_id}/status")
    assert status.headers["Cache-Control"] == "no-store"
    assert status.get_json()["raffleExecuted"] is True

    again = client.post(f"/operator/events/{event_id}/raffle", json={"seed": "other"})
    assert again.status_code == 409

    audit = client.get(f"/operator/audit?eventId={event_id}").get_json()["entries"]
    raffle_entry = next(entry for entry in audit if entry["action"] == "raffle_execute")
    assert raffle_entry["details"]["seed"] == "abc"


def test_raffle_results_before_execution_is_404(client):
    _login(client)
    event_id = _create_event(client)

    assert client.get(f"/api/raffles/{event_id}").status_code == 404


def test_featured_winner_listed_after_stop(client):
    _login(client)
    event_id = _create_event(client)
    client.post(f"/operator/events/{event_id}/reschedule")
    client.post(f"/operator/events/{event_id}/start")

    stopped = client.post(f"/operator/events/{event_id}/stop", json={"winnerId": 2})
    assert stopped.status_code == 200
    run_coroutine_sync(wait_background_tasks())

    featured = client.get("/api/featured").get_json()["featured"]
    assert [placement["contestantId"] for placement in featured] == [2]


def test_health_and_metrics(client):
    health = client.get("/health")
    assert health.status_code == 200
    assert health.get_json()["status"] == "ok"
    assert health.get_json()["db_pool_size"] == 2

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert b"http_request_latency_seconds" in metrics.data


def test_root_redirects_and_unknown_paths_are_json(client):
    root = client.get("/")
    assert root.status_code == 302
    assert root.headers["Location"].endswith("/operator/")

    missing = client.get("/nope")
    assert missing.status_code == 404
    assert missing.get_json()["error"] == "Not Found"
    assert missing.headers["X-Frame-Options"] == "DENY"
