# animelog/web.py
import functools
import logging
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from animelog.auth import AuthState, SessionTokenManager
from animelog.errors import AnimeLogError, StorageConflict, StorageFailure, Unauthorized, ValidationError
from animelog.models import AnimeItem, check_int_range, require_field
from animelog.service import AnimeService

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="")
anime_bp = Blueprint("anime", __name__, url_prefix="/anime")

STATUS_BY_TAG = {
    "AnimeNotFound": 404,
    "WatchListNotFound": 404,
    "EpisodeNotFound": 404,
    "InvalidRequest": 400,
    "NotLoggedIn": 401,
    "OtpNotValid": 401,
    "Conflict": 409,
    "InternalError": 500,
}


def register_routes(app, service: AnimeService, sessions: SessionTokenManager):
    """
    Register blueprints and make SERVICE / SESSIONS available to the views.
    Call this once during app creation (run.create_app does this).
    """
    app.config.setdefault("SERVICE", service)
    app.config.setdefault("SESSIONS", sessions)
    app.register_blueprint(auth_bp)
    app.register_blueprint(anime_bp)

    @app.after_request
    def add_cors_headers(resp):
        resp.headers["Access-Control-Allow-Origin"] = "*"
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST"
        resp.headers["Access-Control-Allow-Headers"] = "*"
        return resp

    logger.debug("Registered blueprints 'auth' and 'anime'")


def _error(tag: str, message: str, status: int):
    return jsonify({"error": tag, "message": message}), status


def register_error_handlers(app):
    """Centralized handlers for tracker exceptions."""
    @app.errorhandler(StorageFailure)
    def handle_storage_failure(e):
        if isinstance(e, StorageConflict):
            logger.warning("StorageConflict: %s", e)
            return _error(e.tag, str(e), 409)
        logger.error("StorageFailure: %s", e, exc_info=e.cause or e)
        return _error("InternalError", "internal server error", 500)

    @app.errorhandler(AnimeLogError)
    def handle_domain_error(e):
        status = STATUS_BY_TAG.get(e.tag, 500)
        if status >= 500:
            logger.error("%s: %s", type(e).__name__, e)
        else:
            logger.info("%s: %s", type(e).__name__, e)
        return _error(e.tag, str(e), status)


# helpers to get app-owned objects
def current_service() -> AnimeService:
    return current_app.config["SERVICE"]


def current_sessions() -> SessionTokenManager:
    return current_app.config["SESSIONS"]


def bearer_token(header) -> str:
    """Return the token of an 'Authorization: Bearer <token>' header, or ''."""
    if not header:
        return ""
    parts = header.split(" ")
    if len(parts) != 2:
        return ""
    return parts[1]


def login_required(view):
    @functools.wraps(view)
    def wrapped(*args, **kwargs):
        token = bearer_token(request.headers.get("Authorization"))
        if current_sessions().authenticate(token) is not AuthState.AUTHENTICATED:
            raise Unauthorized()
        return view(*args, **kwargs)
    return wrapped


def _body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("request body must be a JSON object")
    return payload


def _field(payload: Dict[str, Any], key: str, kind):
    return require_field(payload, key, kind, "request")


def _query_int(name: str) -> int:
    raw = request.args.get(name, "")
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer") from None
    return check_int_range(value, name)


# -----------------------
# Session
# -----------------------
@auth_bp.route("/login", methods=["POST"])
def login():
    otp = _body().get("otp")
    logger.info("Received request to log in")
    token = current_sessions().login(otp if isinstance(otp, str) else "")
    return jsonify({"token": token})


@auth_bp.route("/logout", methods=["POST"])
def logout():
    payload = request.get_json(silent=True) or {}
    token = payload.get("token") if isinstance(payload, dict) else None
    logger.info("Received request to log out")
    if isinstance(token, str):
        current_sessions().logout(token)
    return "", 200


@auth_bp.route("/validate", methods=["POST"])
@login_required
def validate():
    return "", 204


# -----------------------
# Read side (no auth)
# -----------------------
@anime_bp.route("/list")
def list_watch_lists():
    return jsonify([wl.to_dict() for wl in current_service().list_watch_lists()])


@anime_bp.route("/get")
def get_anime_state():
    s = current_service().get_anime_state(_query_int("anime_id"))
    return jsonify(s.to_dict())


@anime_bp.route("/get_anime_states", methods=["POST"])
def get_anime_states():
    ids = _field(_body(), "anime_ids", list)
    if any(isinstance(i, bool) or not isinstance(i, int) for i in ids):
        raise ValidationError("anime_ids must be a list of integers")
    for i in ids:
        check_int_range(i, "anime_ids")
    return jsonify([s.to_dict() for s in current_service().get_anime_states(ids)])


@anime_bp.route("/all")
def all_anime_states():
    return jsonify([s.to_dict() for s in current_service().list_anime_states()])


@anime_bp.route("/get_watch_list")
def get_watch_list():
    title = request.args.get("watch_list_name", "")
    return jsonify(current_service().get_watch_list(title).to_dict())


# -----------------------
# Mutations (auth required)
# -----------------------
@anime_bp.route("/insert_anime_item", methods=["POST"])
@login_required
def insert_anime_item():
    item = AnimeItem.from_dict(_body())
    logger.info("Inserting anime item id=%s", item.id)
    current_service().anime_states.insert(item)
    return "", 201


@anime_bp.route("/track_anime", methods=["POST"])
@login_required
def track_anime():
    payload = _body()
    item = AnimeItem.from_dict(_field(payload, "anime_item", dict))
    s = current_service().track_anime(item, _field(payload, "watch_list_name", str))
    return jsonify(s.to_dict()), 201


@anime_bp.route("/add_item_to_watch_list", methods=["POST"])
@login_required
def add_item_to_watch_list():
    payload = _body()
    current_service().add_anime_to_list(_field(payload, "anime_id", int), _field(payload, "watch_list_name", str))
    return "", 201


@anime_bp.route("/add_new_watch_list", methods=["POST"])
@login_required
def add_new_watch_list():
    current_service().watch_lists.create(_field(_body(), "watch_list_name", str))
    return "", 201


@anime_bp.route("/update_episode_watched_state", methods=["POST"])
@login_required
def update_episode_watched_state():
    payload = _body()
    current_service().anime_states.set_episode_watched(
        _field(payload, "anime_id", int), _field(payload, "ep", float), _field(payload, "watched", bool))
    return "", 200


@anime_bp.route("/update_anime_visibility", methods=["POST"])
@login_required
def update_anime_visibility():
    payload = _body()
    current_service().anime_states.set_visibility(_field(payload, "anime_id", int), _field(payload, "visible", bool))
    return "", 200


@anime_bp.route("/update_anime_rating", methods=["POST"])
@login_required
def update_anime_rating():
    payload = _body()
    rating = payload.get("rating")
    current_service().anime_states.set_rating(_field(payload, "anime_id", int), rating)
    return "", 200


@anime_bp.route("/update_anime_favorite", methods=["POST"])
@login_required
def update_anime_favorite():
    payload = _body()
    current_service().anime_states.set_favorite(_field(payload, "anime_id", int), _field(payload, "favorite", bool))
    return "", 200


@anime_bp.route("/update_watch_list_archived", methods=["POST"])
@login_required
def update_watch_list_archived():
    payload = _body()
    current_service().watch_lists.set_archived(_field(payload, "watch_list_name", str), _field(payload, "archived", bool))
    return "", 200


@anime_bp.route("/delete_watch_list", methods=["POST"])
@login_required
def delete_watch_list():
    purged = current_service().delete_watch_list(_field(_body(), "watch_list_name", str))
    return jsonify({"purged": purged})


@anime_bp.route("/delete_anime_state_from_watch_list", methods=["POST"])
@login_required
def delete_anime_state_from_watch_list():
    payload = _body()
    purged = current_service().remove_anime_from_list(_field(payload, "anime_id", int), _field(payload, "watch_list_name", str))
    return jsonify({"purged": purged})
