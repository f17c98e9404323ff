import json
import os
import logging
from flask import Flask
from animelog.auth import SessionTokenManager
from animelog.repo import SqliteRepo
from animelog.service import AnimeService
from animelog.web import register_routes, register_error_handlers

DEFAULT_CFG = {
    "database": "data/animelog.db",
    "debug": False,
    "host": "0.0.0.0",
    "port": 3000,
    "logging_level": "INFO",
    "log_file": None,
    "otp_secret": None,
    "mock_totp": False,
}

ENV_OVERRIDES = {
    "ANIMELOG_DATABASE": "database",
    "ANIMELOG_SECRET": "otp_secret",
}

logger = logging.getLogger(__name__)


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(path=None, environ=None):
    """Defaults, overlaid by the JSON config file (if any), overlaid by environment variables."""
    environ = os.environ if environ is None else environ
    path = path or environ.get("ANIMELOG_CONFIG", "config.json")
    merged = DEFAULT_CFG.copy()
    if not os.path.exists(path):
        print("config file", path, "not found, using defaults")
    else:
        try:
            with open(path, "r", encoding="utf-8") as f:
                cfg = json.load(f)
        except (OSError, ValueError) as e:
            print("Failed to read", path, ":", e, ", using defaults")
            cfg = {}
        if isinstance(cfg, dict):
            merged.update(cfg)
    for env_key, cfg_key in ENV_OVERRIDES.items():
        if environ.get(env_key):
            merged[cfg_key] = environ[env_key]
    # bypass is opt-in only: MOCK_TOTP must be set to a truthy value
    if _truthy(environ.get("MOCK_TOTP", "")):
        merged["mock_totp"] = True
    return merged


def configure_logging(level_name: str, log_file=None, debug: bool = False):
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    handlers = [logging.StreamHandler()]
    if log_file:
        parent = os.path.dirname(log_file)
        if parent:
            os.makedirs(parent, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
    )
    # quieter werkzeug when not debugging
    logging.getLogger("werkzeug").setLevel(logging.WARNING if not debug else logging.INFO)


def create_app(config=None):
    cfg = load_config()
    if config:
        cfg.update(config)
    configure_logging(cfg.get("logging_level", "INFO"), cfg.get("log_file"), cfg.get("debug", False))
    logger.info("Starting app with config: %s",
                {k: v for k, v in cfg.items() if k not in ("database", "otp_secret")})

    if not cfg.get("otp_secret"):
        raise RuntimeError("no OTP secret configured: set ANIMELOG_SECRET or otp_secret")

    app = Flask(__name__)
    repo = SqliteRepo(cfg["database"])
    repo.init_schema()
    service = AnimeService(repo)
    sessions = SessionTokenManager(cfg["otp_secret"], mock_totp=bool(cfg.get("mock_totp")))
    app.config["SERVICE"] = service
    app.config["SESSIONS"] = sessions

    register_routes(app, service, sessions)
    register_error_handlers(app)
    return app


if __name__ == "__main__":
    cfg = load_config()
    app = create_app()
    app.run(host=cfg.get("host", "0.0.0.0"), port=cfg.get("port", 3000), debug=cfg.get("debug", False), threaded=True)
