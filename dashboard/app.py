"""
dashboard/app.py
Read-only Flask JSON API over live inspection and ownership history.

Security properties:
  - debug=False enforced programmatically (cannot be overridden by env)
  - SECRET_KEY auto-generated if not set
  - optional Basic-auth with bcrypt password hashes (passlib)
  - stacktraces never exposed to client
  - no mutating routes

Layering: dashboard -> utils only. The inspector, history handle and
ancestry builder are handed in by main.py and used by duck typing.
"""

from __future__ import annotations

import hmac
import secrets
from datetime import datetime

from flask import Flask, Response, abort, jsonify, request
from passlib.hash import bcrypt as _bcrypt
from werkzeug.exceptions import HTTPException

from utils.constants import DEFAULT_ANCESTRY_DEPTH
from utils.logger import get_logger
from utils.validators import parse_duration, validate_port, validate_proto

log = get_logger("portik.dashboard")

RECENT_MAX = 200


def hash_password(plain: str) -> str:
    """Hash a plaintext password for storage in config.yaml."""
    return _bcrypt.hash(plain)


def verify_password(plain: str, stored: str) -> bool:
    """
    Verify plain against a stored bcrypt hash, or against a plaintext
    password in constant time when the config holds one.
    """
    if stored.startswith("$2"):
        try:
            return _bcrypt.verify(plain, stored)
        except ValueError:
            return False
    return hmac.compare_digest(stored.encode(), plain.encode())


class InvalidQuery(ValueError):
    """Invalid query input; answered with 400."""


# -- Request parsing ------------------------------------------------------------

def _port_arg(port: int) -> int:
    ok, err = validate_port(port)
    if not ok:
        raise InvalidQuery(err)
    return port


def _proto_arg(default: str = "tcp") -> str:
    proto = request.args.get("proto", default).lower()
    ok, err = validate_proto(proto)
    if not ok:
        raise InvalidQuery(err)
    return proto


def _int_arg(name: str, default: int, lo: int, hi: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        n = int(raw)
    except ValueError:
        raise InvalidQuery(f"{name} must be an integer")
    if not lo <= n <= hi:
        raise InvalidQuery(f"{name} must be between {lo} and {hi}")
    return n


def _flag_arg(name: str) -> bool:
    return request.args.get(name, "").lower() in ("1", "true", "yes", "on")


# -- Factory ------------------------------------------------------------------

def create_app(cfg: dict, inspector, history, ancestry) -> Flask:
    """
    Application factory.

    cfg keys (the `dashboard` section of config.yaml):
      secret_key     str  -- random per process when empty
      enable_auth    bool -- enable HTTP Basic-Auth (default False)
      auth_username  str
      auth_password  str  -- bcrypt hash OR plain (plain triggers warning)
    """
    app = Flask(__name__)

    secret = cfg.get("secret_key", "")
    if not secret:
        secret = secrets.token_hex(32)

    app.config["SECRET_KEY"]           = secret
    app.config["DEBUG"]                = False   # HARD -- no env override
    app.config["PROPAGATE_EXCEPTIONS"] = False
    app.config["TRAP_HTTP_EXCEPTIONS"] = False

    enable_auth = bool(cfg.get("enable_auth", False))
    auth_user   = cfg.get("auth_username", "portik") or "portik"
    stored_pass = cfg.get("auth_password", "") or ""

    if enable_auth and not stored_pass:
        log.warning("Dashboard auth enabled without auth_password -- every login will fail")
    elif enable_auth and not stored_pass.startswith("$2"):
        log.warning(
            "auth_password is stored as plaintext -- consider storing a "
            "bcrypt hash instead (run: portik --hash-password <password>)."
        )

    @app.before_request
    def _require_auth():
        if not enable_auth:
            return None
        auth = request.authorization
        if not auth or auth.username is None or auth.password is None:
            return _auth_challenge()
        ok_user = hmac.compare_digest(auth.username.encode(), auth_user.encode())
        ok_pass = verify_password(auth.password, stored_pass)
        if not (ok_user and ok_pass):
            return _auth_challenge()
        return None

    # Error handlers (no stacktrace leakage)
    @app.errorhandler(InvalidQuery)
    def _e400(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(404)
    def _e404(e):
        return jsonify({"error": "not found"}), 404

    @app.errorhandler(405)
    def _e405(e):
        return jsonify({"error": "method not allowed"}), 405

    @app.errorhandler(Exception)
    def _unhandled(e):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.name.lower()}), e.code
        log.exception("Unhandled exception")
        return jsonify({"error": "internal server error"}), 500

    # Routes
    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "auth": enable_auth})

    @app.route("/api/port/<int:port>")
    def api_port(port: int):
        port = _port_arg(port)
        proto = _proto_arg()
        report = inspector.check(port, proto,
                                 docker=_flag_arg("docker"),
                                 connections=_flag_arg("connections"))
        return jsonify(report.to_dict())

    @app.route("/api/history/<int:port>")
    def api_history(port: int):
        port = _port_arg(port)
        since = request.args.get("since", "7d")
        try:
            window = parse_duration(since)
        except ValueError as exc:
            raise InvalidQuery(str(exc))
        cutoff = datetime.now().astimezone() - window
        view = history.load().view_port_since(port, cutoff, _flag_arg("patterns"))
        return jsonify({"port": port, "since": since, **view.to_dict()})

    @app.route("/api/recent/<int:port>")
    def api_recent(port: int):
        port = _port_arg(port)
        proto = _proto_arg()
        n = _int_arg("n", 10, 1, RECENT_MAX)
        events = history.load().recent_owners(port, proto, n)
        return jsonify({"key": f"{port}/{proto}", "events": [e.to_dict() for e in events]})

    @app.route("/api/blame/<int:port>")
    def api_blame(port: int):
        port = _port_arg(port)
        proto = _proto_arg()
        depth = _int_arg("depth", DEFAULT_ANCESTRY_DEPTH, 1, 64)
        report = inspector.check(port, proto)
        data = ancestry.blame(report, depth)
        if data["target"] is None:
            abort(404)
        return jsonify(data)

    return app


# -- Helpers ------------------------------------------------------------------

def _auth_challenge() -> Response:
    return Response(
        "Authentication required",
        401,
        {"WWW-Authenticate": 'Basic realm="portik"'},
    )


# -- Server runner ------------------------------------------------------------

def run_dashboard(cfg: dict, inspector, history, ancestry) -> None:
    app = create_app(cfg, inspector, history, ancestry)
    host = cfg.get("host", "127.0.0.1")
    port = int(cfg.get("port", 5055))
    log.info(f"Dashboard at http://{host}:{port}")
    log.info(f"Auth: {'ON' if cfg.get('enable_auth') else 'OFF (set dashboard.enable_auth for shared hosts)'}")
    app.run(host=host, port=port, debug=False, use_reloader=False)
