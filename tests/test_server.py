"""
Tests for the board server routes (Flask test client, SQLite remote, fake auth).
"""
import pytest

from board_server import create_app
from conftest import DAY, USER_ID
from lifereboot.config import Config

AUTH = {"Authorization": f"Bearer token-{USER_ID}"}


@pytest.fixture
def app(tmp_path, remote, connectivity, fake_auth):
    cfg = Config(
        sqlite_path=str(tmp_path / "remote.db"),
        local_state_path=str(tmp_path / "local.db"),
        note_debounce_ms=60_000,
    )
    app = create_app(cfg, remote=remote, auth=fake_auth, connectivity=connectivity)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def _board(client, day=DAY):
    resp = client.get(f"/dashboard/{day}", headers=AUTH)
    assert resp.status_code == 200
    return resp.get_json()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Auth
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_dashboard_requires_session(client):
    assert client.get(f"/dashboard/{DAY}").status_code == 401
    resp = client.get(f"/dashboard/{DAY}", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


def test_login(client):
    resp = client.post("/login", json={"email": "a@example.com", "password": "secret"})
    assert resp.status_code == 200
    assert resp.get_json()["session"]["access_token"] == f"token-{USER_ID}"

    resp = client.post("/login", json={"email": "a@example.com", "password": "wrong"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid login credentials"


def test_oauth_redirects(client):
    resp = client.get("/login/oauth/google")
    assert resp.status_code == 302
    assert "provider=google" in resp.headers["Location"]


def test_signup_and_reset(client, fake_auth):
    resp = client.post("/signup", json={"email": "new@example.com", "password": "pw"})
    assert resp.status_code == 201
    assert resp.get_json()["confirmation_required"] is True

    assert client.post("/reset-password", json={"email": "a@example.com"}).status_code == 200
    assert fake_auth.reset_requests == ["a@example.com"]
    assert client.post("/reset-password", json={}).status_code == 400


def test_logout(client, fake_auth):
    resp = client.post("/logout", headers=AUTH)
    assert resp.status_code == 200
    assert fake_auth.signed_out == [f"token-{USER_ID}"]


def test_no_auth_service_configured(tmp_path, remote, connectivity, monkeypatch):
    """Without an auth service the dashboard answers 503"""
    cfg = Config(local_state_path=str(tmp_path / "local.db"))
    monkeypatch.delenv(cfg.auth_key_env, raising=False)
    client = create_app(cfg, remote=remote, connectivity=connectivity).test_client()
    assert client.get(f"/dashboard/{DAY}", headers=AUTH).status_code == 503


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Daily Board
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_dashboard_redirects_to_today(client):
    resp = client.get("/dashboard", headers=AUTH)
    assert resp.status_code == 302
    assert "/dashboard/" in resp.headers["Location"]


def test_invalid_date_does_not_match(client):
    assert client.get("/dashboard/2024-02-30", headers=AUTH).status_code == 404


def test_new_user_completes_fajr(client, sqlite_remote):
    """New user: defaults seeded, Fajr dragged to completed, one history row"""
    board = _board(client)
    assert [len(board["columns"][b]) for b in ("morning", "afternoon", "evening", "completed")] == [3, 3, 3, 0]
    assert sum(len(c) for c in board["task_columns"].values()) == 3
    assert board["note"] == ""
    assert board["quote"]["text"]

    fajr = next(h for h in board["columns"]["morning"] if h["title"] == "Fajr Prayer")
    resp = client.post(f"/dashboard/{DAY}/habits/{fajr['id']}/move",
                       json={"time_of_day": "completed"}, headers=AUTH)

    assert resp.status_code == 200
    assert resp.get_json()["habit"]["status"] == "completed"
    history = sqlite_remote.select("history", eq={"user_id": USER_ID})
    assert len(history) == 1
    assert history[0]["habit_id"] == fajr["id"]
    assert history[0]["date"] == DAY

    board = _board(client)
    assert [h["title"] for h in board["columns"]["completed"]] == ["Fajr Prayer"]


def test_move_validation(client):
    board = _board(client)
    habit = board["columns"]["morning"][0]
    url = f"/dashboard/{DAY}/habits/{habit['id']}/move"
    assert client.post(url, json={}, headers=AUTH).status_code == 400
    assert client.post(url, json={"time_of_day": "night"}, headers=AUTH).status_code == 400
    resp = client.post(f"/dashboard/{DAY}/habits/missing/move",
                       json={"time_of_day": "completed"}, headers=AUTH)
    assert resp.status_code == 404


def test_move_remote_failure_is_502(client, remote):
    board = _board(client)
    habit = board["columns"]["evening"][0]
    remote.fail = True
    resp = client.post(f"/dashboard/{DAY}/habits/{habit['id']}/move",
                       json={"time_of_day": "completed"}, headers=AUTH)
    assert resp.status_code == 502
    assert resp.get_json()["sync_status"] == "error"

    remote.fail = False
    messages = [n["message"] for n in client.get("/notifications", headers=AUTH).get_json()["notifications"]]
    assert "Failed to move habit. Please try again." in messages


def test_habit_create_edit_delete(client):
    _board(client)
    resp = client.post(f"/dashboard/{DAY}/habits",
                       json={"title": "Walk", "time_of_day": "afternoon"}, headers=AUTH)
    assert resp.status_code == 201
    habit_id = resp.get_json()["habit"]["id"]

    resp = client.patch(f"/dashboard/{DAY}/habits/{habit_id}",
                        json={"title": "Long walk", "status": "skipped"}, headers=AUTH)
    assert resp.status_code == 200
    assert resp.get_json()["habit"]["title"] == "Long walk"
    assert resp.get_json()["habit"]["status"] == "skipped"

    assert client.delete(f"/dashboard/{DAY}/habits/{habit_id}", headers=AUTH).status_code == 200
    assert client.post(f"/dashboard/{DAY}/habits", json={"title": ""}, headers=AUTH).status_code == 400


def test_task_routes(client):
    board = _board(client)
    task = board["task_columns"]["todo"][0]

    resp = client.post(f"/dashboard/{DAY}/tasks/{task['id']}/move",
                       json={"status": "in_progress"}, headers=AUTH)
    assert resp.get_json()["task"]["status"] == "in_progress"

    resp = client.post(f"/dashboard/{DAY}/tasks",
                       json={"title": "Call family", "scheduled_time": "19:30"}, headers=AUTH)
    assert resp.status_code == 201

    assert client.delete(f"/dashboard/{DAY}/tasks/{task['id']}", headers=AUTH).status_code == 200
    listing = client.get(f"/dashboard/tasks?date={DAY}", headers=AUTH).get_json()
    assert len(listing["items"]) == 3


def test_task_actions_refused_after_partial_day_load(client, remote, sqlite_remote):
    """Task actions never touch the previous day's rows when the new day's tasks failed to load"""
    board = _board(client)
    task = board["task_columns"]["todo"][0]

    remote.fail = True
    remote.fail_table = "tasks"
    assert client.get("/dashboard/2024-01-02", headers=AUTH).status_code == 502

    resp = client.post(f"/dashboard/2024-01-02/tasks/{task['id']}/move",
                       json={"status": "done"}, headers=AUTH)
    assert resp.status_code == 502
    assert client.delete(f"/dashboard/2024-01-02/tasks/{task['id']}", headers=AUTH).status_code == 502
    assert sqlite_remote.select_one("tasks", {"id": task["id"]})["status"] == "todo"


def test_note_autosave_and_flush(client, remote, sqlite_remote):
    """PUT schedules the write; flush sends it once"""
    _board(client)
    remote.calls.clear()
    for text in ("a", "ab", "abc"):
        resp = client.put(f"/dashboard/{DAY}/note", json={"content": text}, headers=AUTH)
        assert resp.status_code == 202
    assert remote.writes() == []

    resp = client.post(f"/dashboard/{DAY}/note/flush", headers=AUTH)
    assert [n["note_content"] for n in resp.get_json()["saved"]] == ["abc"]
    assert len(remote.writes()) == 1

    note = client.get(f"/dashboard/{DAY}/note", headers=AUTH).get_json()
    assert note["content"] == "abc"
    assert len(sqlite_remote.select("daily_notes")) == 1


def test_note_immediate_save(client, sqlite_remote):
    resp = client.put(f"/dashboard/{DAY}/note?immediate=1", json={"content": "now"}, headers=AUTH)
    assert resp.status_code == 200
    assert sqlite_remote.select("daily_notes")[0]["note_content"] == "now"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Fixed Pages
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_analytics_and_history(client):
    board = _board(client)
    habit = board["columns"]["morning"][0]
    client.post(f"/dashboard/{DAY}/habits/{habit['id']}/move",
                json={"time_of_day": "completed"}, headers=AUTH)

    stats = client.get(f"/dashboard/analytics?today={DAY}", headers=AUTH).get_json()
    assert stats["completed_habits"] == 1
    assert stats["streak_days"] == 1

    history = client.get(f"/dashboard/history?today={DAY}&date={DAY}&entries=1",
                         headers=AUTH).get_json()
    assert history["completed_dates"] == [DAY]
    assert len(history["items"]) == 9
    assert len(history["entries"]) == 1

    assert client.get("/dashboard/analytics?days=abc", headers=AUTH).status_code == 400


def test_habit_list_status_route(client):
    habits = client.get(f"/dashboard/habits?date={DAY}", headers=AUTH).get_json()
    habit = habits["items"][0]
    resp = client.post(f"/dashboard/habits/{habit['id']}/status?date={DAY}",
                       json={"status": "completed"}, headers=AUTH)
    assert resp.get_json()["habit"]["time_of_day"] == "completed"

    resp = client.post(f"/dashboard/habits/{habit['id']}/status?date={DAY}",
                       json={"status": "pending"}, headers=AUTH)
    assert resp.status_code == 400


def test_settings(client):
    profile = client.get("/dashboard/settings", headers=AUTH).get_json()["profile"]
    assert profile["preferred_language"] == "en"

    resp = client.put("/dashboard/settings", json={"preferred_language": "ar", "theme": "dark"},
                      headers=AUTH)
    assert resp.get_json()["profile"]["theme"] == "dark"
    assert client.put("/dashboard/settings", json={"theme": "neon"}, headers=AUTH).status_code == 400


def test_notes_page(client):
    client.put(f"/dashboard/{DAY}/note?immediate=1", json={"content": "hello"}, headers=AUTH)
    data = client.get(f"/dashboard/notes?date={DAY}", headers=AUTH).get_json()
    assert data["content"] == "hello"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Connectivity
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_offline_round_trip(client, sqlite_remote):
    """Offline moves are queued, creates refused, and replayed on reconnect"""
    board = _board(client)
    habit = board["columns"]["morning"][0]

    resp = client.post("/connectivity", json={"mode": "offline"}, headers=AUTH)
    assert resp.get_json()["mode"] == "offline"

    resp = client.post(f"/dashboard/{DAY}/habits/{habit['id']}/move",
                       json={"time_of_day": "evening"}, headers=AUTH)
    assert resp.status_code == 200
    assert client.get("/connectivity", headers=AUTH).get_json() == {"mode": "offline", "pending": 1}

    resp = client.post(f"/dashboard/{DAY}/habits", json={"title": "Walk"}, headers=AUTH)
    assert resp.status_code == 409
    assert client.get("/dashboard/2024-01-02", headers=AUTH).status_code == 409

    resp = client.post("/connectivity", json={"mode": "online"}, headers=AUTH)
    assert resp.get_json()["replay"]["applied"] == 1
    assert resp.get_json()["pending"] == 0
    assert sqlite_remote.select_one("habits", {"id": habit["id"]})["time_of_day"] == "evening"


def test_offline_switch_is_per_user(client, sqlite_remote):
    """One user going offline leaves other users online with their own queue"""
    other = {"Authorization": "Bearer token-user-2"}
    _board(client)
    assert client.get(f"/dashboard/{DAY}", headers=other).status_code == 200

    client.post("/connectivity", json={"mode": "offline"}, headers=AUTH)

    assert client.get("/connectivity", headers=other).get_json() == {"mode": "online", "pending": 0}
    resp = client.post(f"/dashboard/{DAY}/habits", json={"title": "Walk"}, headers=other)
    assert resp.status_code == 201
    assert client.post(f"/dashboard/{DAY}/habits", json={"title": "Walk"}, headers=AUTH).status_code == 409
    assert client.get("/health").get_json()["mode"] == "online"


def test_connectivity_requires_session(client):
    assert client.get("/connectivity").status_code == 401
    assert client.post("/connectivity", json={"mode": "offline"}).status_code == 401


def test_connectivity_validation(client):
    assert client.post("/connectivity", json={"mode": "remote"}, headers=AUTH).status_code == 400


def test_health(client):
    data = client.get("/health").get_json()
    assert data["status"] == "ok"
    assert data["mode"] == "online"
    assert data["backend"] == "sqlite"
