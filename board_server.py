#!/usr/bin/env python3
"""
Life Reboot Board Server
------------------------
JSON API for the daily habit board, task columns, notes, analytics and
settings. Tables live behind the configured remote (hosted PostgREST or a
local SQLite file); sign-in goes through the hosted auth service.

Usage:
    python board_server.py
    python board_server.py --config lifereboot.yaml --port 3000
    python board_server.py --db /tmp/lifereboot_remote.db   # local SQLite tables

Auth:
    Every /dashboard route needs ``Authorization: Bearer <access token>``
    (the token returned by POST /login).

API:
    GET  /dashboard                          → redirect to today's board
    GET  /dashboard/<YYYY-MM-DD>             → { columns, task_columns, note, sync, quote }
    POST /dashboard/<date>/habits            → { title, description?, time_of_day? }
    POST /dashboard/<date>/habits/<id>/move  → { time_of_day }
    PATCH|DELETE /dashboard/<date>/habits/<id>
    POST /dashboard/<date>/tasks             → { title, description?, scheduled_time? }
    POST /dashboard/<date>/tasks/<id>/move   → { status }
    DELETE /dashboard/<date>/tasks/<id>
    GET|PUT /dashboard/<date>/note, POST /dashboard/<date>/note/flush
    GET  /dashboard/analytics | history | tasks | notes | habits
    GET|PUT /dashboard/settings
    POST /login, /signup, /logout, /reset-password; GET /login/oauth/<provider>
    GET|POST /connectivity (per user), GET /notifications, GET /health
"""

import logging
import os
import sys
from functools import wraps

from flask import Flask, g, jsonify, redirect, request, url_for
from werkzeug.routing import BaseConverter, ValidationError as RouteValidationError

from lifereboot.analytics import completion_stats, history_calendar, habit_history
from lifereboot.auth import AuthClient, AuthError
from lifereboot.board import BoardRegistry
from lifereboot.config import Config, ConfigError
from lifereboot.dates import format_date_string, today_str
from lifereboot.events import StoreEvents, NotificationFeed
from lifereboot.offline import Connectivity, ConnectivityMode, OfflineError
from lifereboot.profiles import get_profile, update_profile
from lifereboot.remote import RemoteError, NoRowsError, connect_remote
from lifereboot.schema import NotFoundError, UserProfile, ValidationError

logger = logging.getLogger("lifereboot.server")


class DateConverter(BaseConverter):
    """``<date:day>``: a real YYYY-MM-DD calendar day, else the route does not match."""

    regex = r"\d{4}-\d{2}-\d{2}"

    def to_python(self, value):
        try:
            return format_date_string(value)
        except ValidationError:
            raise RouteValidationError()

    def to_url(self, value):
        return format_date_string(value)


def build_auth(cfg: Config):
    """Auth client from config, or None when no auth service is configured."""
    api_key = os.environ.get(cfg.auth_key_env, "")
    if not cfg.auth_url or not api_key:
        logger.warning(
            f"Auth service not configured (auth_url / {cfg.auth_key_env}); "
            f"dashboard routes will answer 503"
        )
        return None
    return AuthClient(cfg.auth_url, api_key, site_url=cfg.site_url, timeout=cfg.request_timeout)


def create_app(config: Config = None, remote=None, auth=None, connectivity=None) -> Flask:
    """
    Build the Flask app. The remote, auth and connectivity handles are created
    from ``config`` unless passed in (tests pass fakes).
    """
    cfg = config or Config.load()
    remote = remote if remote is not None else connect_remote(cfg)
    if auth is None:
        auth = build_auth(cfg)
    events = StoreEvents()
    if connectivity is None:
        connectivity = Connectivity(cfg.local_state_path, remote, events=events)
    elif connectivity.events is None:
        connectivity.events = events
    else:
        events = connectivity.events
    feed = NotificationFeed(events, limit=cfg.notification_limit)
    boards = BoardRegistry(remote, connectivity, events, debounce_ms=cfg.note_debounce_ms)

    app = Flask(__name__)
    app.url_map.converters["date"] = DateConverter
    app.config["LIFEREBOOT"] = cfg
    app.extensions["lifereboot"] = {
        "remote": remote,
        "auth": auth,
        "connectivity": connectivity,
        "events": events,
        "feed": feed,
        "boards": boards,
    }

    # ── Errors ───────────────────────────────────────────────────────────────

    @app.errorhandler(ValidationError)
    def on_validation_error(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(NotFoundError)
    def on_not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(NoRowsError)
    def on_no_rows(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(RemoteError)
    def on_remote_error(e):
        logger.error(f"Remote error on {request.path}: {e}")
        return jsonify({"error": str(e)}), 502

    @app.errorhandler(OfflineError)
    def on_offline(e):
        return jsonify({"error": str(e), "mode": ConnectivityMode.OFFLINE.value}), 409

    @app.errorhandler(AuthError)
    def on_auth_error(e):
        return jsonify({"error": str(e)}), 401 if e.status == 401 else 400

    # ── Auth ─────────────────────────────────────────────────────────────────

    def require_session(f):
        """Decorator: resolve the bearer token to ``g.user_id`` or reject."""
        @wraps(f)
        def decorated(*args, **kwargs):
            if auth is None:
                return jsonify({"error": "Auth service not configured"}), 503
            header = request.headers.get("Authorization", "")
            token = header[7:].strip() if header.lower().startswith("bearer ") else ""
            if not token:
                return jsonify({"error": "Unauthorized"}), 401
            try:
                user = auth.get_user(token)
            except AuthError as e:
                return jsonify({"error": str(e) or "Unauthorized"}), 401
            g.user_id = user.id
            g.email = user.email
            g.access_token = token
            return f(*args, **kwargs)
        return decorated

    def body() -> dict:
        return request.get_json(force=True, silent=True) or {}

    def board_for(day: str):
        """The user's board, loaded for ``day``."""
        board = boards.for_user(g.user_id)
        if board.date != day:
            board.open(day)
        if board.date != day:
            raise RemoteError(board.error or f"Failed to load the board for {day}")
        return board

    def store_result(value, store, key: str, code: int = 200):
        """Action result, or 502 with the store's error when the remote write failed."""
        if value is None or value is False:
            return jsonify({"error": store.error or "Remote write failed",
                            "sync_status": store.sync_status.value}), 502
        if hasattr(value, "to_dict"):
            value = value.to_dict()
        return jsonify({key: value}), code

    def query_today() -> str:
        return format_date_string(request.args.get("today") or today_str())

    def query_day() -> str:
        return format_date_string(request.args.get("date") or today_str())

    def query_int(name: str, default: int) -> int:
        try:
            return int(request.args.get(name, default))
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be an integer")

    @app.route("/login", methods=["POST"])
    def login():
        data = body()
        if auth is None:
            return jsonify({"error": "Auth service not configured"}), 503
        session = auth.sign_in_with_password(data.get("email", ""), data.get("password", ""))
        return jsonify({"session": session.to_dict()})

    @app.route("/login/oauth/<provider>")
    def login_oauth(provider):
        if auth is None:
            return jsonify({"error": "Auth service not configured"}), 503
        return redirect(auth.sign_in_with_oauth(provider, request.args.get("redirect_to")))

    @app.route("/signup", methods=["POST"])
    def signup():
        data = body()
        if auth is None:
            return jsonify({"error": "Auth service not configured"}), 503
        session = auth.sign_up(data.get("email", ""), data.get("password", ""))
        return jsonify({
            "session": session.to_dict() if session else None,
            "confirmation_required": session is None,
        }), 201

    @app.route("/logout", methods=["POST"])
    @require_session
    def logout():
        boards.drop(g.user_id)
        auth.sign_out(g.access_token)
        return jsonify({"signed_out": True})

    @app.route("/reset-password", methods=["POST"])
    def reset_password():
        data = body()
        if auth is None:
            return jsonify({"error": "Auth service not configured"}), 503
        auth.reset_password_for_email(data.get("email", ""), data.get("redirect_to"))
        return jsonify({"message": "Check your email for the password reset link."})

    # ── Daily board ──────────────────────────────────────────────────────────

    @app.route("/dashboard")
    @require_session
    def dashboard():
        return redirect(url_for("dashboard_day", day=today_str()))

    @app.route("/dashboard/<date:day>")
    @require_session
    def dashboard_day(day):
        board = boards.for_user(g.user_id)
        ok = board.open(day)
        return jsonify(board.to_dict()), 200 if ok else 502

    @app.route("/dashboard/<date:day>/habits", methods=["POST"])
    @require_session
    def habit_create(day):
        data = body()
        board = board_for(day)
        habit = board.habits.add(
            data.get("title", ""),
            data.get("description"),
            data.get("time_of_day") or "morning",
        )
        return store_result(habit, board.habits, "habit", 201)

    @app.route("/dashboard/<date:day>/habits/<habit_id>/move", methods=["POST"])
    @require_session
    def habit_move(day, habit_id):
        target = body().get("time_of_day", "")
        if not target:
            return jsonify({"error": "time_of_day is required"}), 400
        board = board_for(day)
        return store_result(board.handle_drop(habit_id, target), board.habits, "habit")

    @app.route("/dashboard/<date:day>/habits/<habit_id>", methods=["PATCH"])
    @require_session
    def habit_update(day, habit_id):
        data = body()
        board = board_for(day)
        if "status" in data:
            habit = board.habits.set_status(habit_id, data["status"])
            if habit is None:
                return store_result(habit, board.habits, "habit")
        habit = board.habits.update(habit_id, data.get("title"), data.get("description"))
        return store_result(habit, board.habits, "habit")

    @app.route("/dashboard/<date:day>/habits/<habit_id>", methods=["DELETE"])
    @require_session
    def habit_delete(day, habit_id):
        board = board_for(day)
        return store_result(board.habits.delete(habit_id), board.habits, "deleted")

    @app.route("/dashboard/<date:day>/tasks", methods=["POST"])
    @require_session
    def task_create(day):
        data = body()
        board = board_for(day)
        task = board.tasks.add(data.get("title", ""), data.get("description"),
                               data.get("scheduled_time"))
        return store_result(task, board.tasks, "task", 201)

    @app.route("/dashboard/<date:day>/tasks/<task_id>/move", methods=["POST"])
    @require_session
    def task_move(day, task_id):
        target = body().get("status", "")
        if not target:
            return jsonify({"error": "status is required"}), 400
        board = board_for(day)
        return store_result(board.handle_task_drop(task_id, target), board.tasks, "task")

    @app.route("/dashboard/<date:day>/tasks/<task_id>", methods=["DELETE"])
    @require_session
    def task_delete(day, task_id):
        board = board_for(day)
        return store_result(board.tasks.delete(task_id), board.tasks, "deleted")

    @app.route("/dashboard/<date:day>/note", methods=["GET"])
    @require_session
    def note_get(day):
        board = board_for(day)
        if board.notes.error:
            return jsonify({"error": board.notes.error}), 502
        return jsonify(board.notes.to_dict())

    @app.route("/dashboard/<date:day>/note", methods=["PUT"])
    @require_session
    def note_put(day):
        """Autosave: the write goes out once edits pause (``?immediate=1`` saves now)."""
        content = body().get("content", "")
        board = board_for(day)
        if request.args.get("immediate"):
            return store_result(board.notes.save(day, content), board.notes, "note")
        board.autosaver.schedule(day, content)
        return jsonify({"scheduled": True, "content": content}), 202

    @app.route("/dashboard/<date:day>/note/flush", methods=["POST"])
    @require_session
    def note_flush(day):
        board = boards.for_user(g.user_id)
        saved = board.autosaver.flush(day)
        if board.notes.error and not saved:
            return jsonify({"error": board.notes.error}), 502
        return jsonify({"saved": [n.to_dict() for n in saved]})

    # ── Fixed pages ──────────────────────────────────────────────────────────

    @app.route("/dashboard/analytics")
    @require_session
    def analytics():
        stats = completion_stats(remote, g.user_id, query_today(), days=query_int("days", 30))
        return jsonify(stats)

    @app.route("/dashboard/history")
    @require_session
    def history():
        calendar = history_calendar(
            remote, g.user_id, query_today(),
            days=query_int("days", 90),
            selected_date=request.args.get("date"),
        )
        if request.args.get("entries"):
            calendar["entries"] = [e.to_dict() for e in habit_history(remote, g.user_id)]
        return jsonify(calendar)

    @app.route("/dashboard/settings", methods=["GET"])
    @require_session
    def settings_get():
        profile = get_profile(remote, g.user_id) or UserProfile(id=g.user_id, email=g.email)
        return jsonify({"profile": profile.to_dict()})

    @app.route("/dashboard/settings", methods=["PUT"])
    @require_session
    def settings_put():
        data = body()
        profile = update_profile(remote, g.user_id, data.get("preferred_language"),
                                 data.get("theme"), email=g.email)
        return jsonify({"profile": profile.to_dict()})

    @app.route("/dashboard/habits")
    @require_session
    def habits_list():
        board = board_for(query_day())
        if board.habits.error:
            return jsonify({"error": board.habits.error}), 502
        return jsonify(board.habits.to_dict())

    @app.route("/dashboard/habits/<habit_id>/status", methods=["POST"])
    @require_session
    def habit_status(habit_id):
        status = body().get("status", "")
        if not status:
            return jsonify({"error": "status is required"}), 400
        board = board_for(query_day())
        return store_result(board.habits.set_status(habit_id, status), board.habits, "habit")

    @app.route("/dashboard/tasks")
    @require_session
    def tasks_list():
        board = board_for(query_day())
        if board.tasks.error:
            return jsonify({"error": board.tasks.error}), 502
        return jsonify(board.tasks.to_dict())

    @app.route("/dashboard/notes")
    @require_session
    def notes_page():
        board = board_for(query_day())
        if board.notes.error:
            return jsonify({"error": board.notes.error}), 502
        return jsonify(board.notes.to_dict())

    # ── Connectivity / notifications ─────────────────────────────────────────

    @app.route("/connectivity", methods=["GET"])
    @require_session
    def connectivity_get():
        return jsonify({
            "mode": connectivity.mode_for(g.user_id).value,
            "pending": connectivity.outbox.count(g.user_id),
        })

    @app.route("/connectivity", methods=["POST"])
    @require_session
    def connectivity_set():
        """Switch the caller's own mode; the server-wide switch is set with --mode."""
        data = body()
        try:
            mode = ConnectivityMode.from_str(data.get("mode", ""))
        except ValueError:
            return jsonify({"error": "mode must be 'online' or 'offline'"}), 400
        if mode == ConnectivityMode.OFFLINE:
            boards.flush(g.user_id)
        result = connectivity.set_mode(mode, reason=data.get("reason", "requested by client"),
                                       user_id=g.user_id)
        result["pending"] = connectivity.outbox.count(g.user_id)
        return jsonify(result)

    @app.route("/notifications")
    @require_session
    def notifications():
        return jsonify({"notifications": feed.drain(g.user_id)})

    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "backend": cfg.remote_backend,
            "mode": connectivity.mode.value,
            "pending": connectivity.outbox.count(),
        })

    return app


# ── Main ─────────────────────────────────────────────────────────────────────

def main():
    import argparse

    parser = argparse.ArgumentParser(description="Life Reboot Board Server")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--config", help="Path to lifereboot.yaml (overrides LIFEREBOOT_CONFIG)")
    parser.add_argument("--db", help="SQLite remote path (overrides LIFEREBOOT_DB env var)")
    parser.add_argument("--mode", choices=["online", "offline"],
                        help="Set the server-wide connectivity mode before serving")
    args = parser.parse_args()

    if args.db:
        os.environ["LIFEREBOOT_DB"] = args.db

    try:
        cfg = Config.load(args.config)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        sys.exit(1)

    host = args.host or cfg.host
    port = args.port or cfg.port

    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format="%(asctime)s [lifereboot] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    try:
        app = create_app(cfg)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        sys.exit(1)

    connectivity = app.extensions["lifereboot"]["connectivity"]
    if args.mode:
        connectivity.set_mode(ConnectivityMode(args.mode), reason="set at startup")
    store = cfg.sqlite_path if cfg.remote_backend == "sqlite" else cfg.remote_url

    print(f"""
╔═══════════════════════════════════════╗
║  Life Reboot Board Server             ║
╠═══════════════════════════════════════╣
║  URL:   http://{host}:{port:<19}║
║  Store: {str(store):<30}║
║  Mode:  {connectivity.mode.value:<30}║
╚═══════════════════════════════════════╝
""")

    app.run(host=host, port=port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
