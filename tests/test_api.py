import json
import sqlite3

import pytest
from run import create_app
from animelog.auth import build_totp
from animelog.repo import InMemoryRepo
from animelog.service import AnimeService

SECRET = "api-test-secret"

ITEM = {
    "id": 42, "name": "Frieren", "name_cn": "葬送的芙莉莲", "summary": "after the journey",
    "date": "2023-09-29", "eps": 28, "total_episodes": 28,
    "images": {"large": "l.jpg", "common": "c.jpg", "medium": "m.jpg", "small": "s.jpg"},
}


@pytest.fixture
def api_client(tmp_path):
    """Flask test client configured for API endpoint tests using InMemoryRepo."""
    app = create_app({"database": str(tmp_path / "api.sqlite"), "otp_secret": SECRET, "mock_totp": False})
    app.testing = True
    svc = AnimeService(InMemoryRepo())
    app.config["SERVICE"] = svc
    with app.test_client() as client:
        yield client, svc

@pytest.fixture
def auth_header(api_client):
    client, _ = api_client
    resp = client.post("/login", json={"otp": build_totp(SECRET).now()})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.get_json()['token']}"}


# ---------- session endpoints ----------
def test_login_with_wrong_code_is_rejected(api_client):
    client, _ = api_client
    resp = client.post("/login", json={"otp": "not-a-code"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "OtpNotValid"

def test_validate_requires_token(api_client, auth_header):
    client, _ = api_client
    assert client.post("/validate").status_code == 401
    assert client.post("/validate", headers={"Authorization": "garbage"}).status_code == 401
    assert client.post("/validate", headers=auth_header).status_code == 204

def test_logout_revokes_token(api_client, auth_header):
    client, _ = api_client
    token = auth_header["Authorization"].split(" ")[1]
    assert client.post("/logout", json={"token": token}).status_code == 200
    assert client.post("/validate", headers=auth_header).status_code == 401
    # idempotent, even for unknown tokens
    assert client.post("/logout", json={"token": token}).status_code == 200
    assert client.post("/logout", json={}).status_code == 200


# ---------- auth guard ----------
@pytest.mark.parametrize("path, body", [
    ("/anime/insert_anime_item", ITEM),
    ("/anime/add_new_watch_list", {"watch_list_name": "w"}),
    ("/anime/add_item_to_watch_list", {"anime_id": 42, "watch_list_name": "w"}),
    ("/anime/update_episode_watched_state", {"anime_id": 42, "ep": 1, "watched": True}),
    ("/anime/update_anime_visibility", {"anime_id": 42, "visible": False}),
    ("/anime/update_anime_rating", {"anime_id": 42, "rating": 5}),
    ("/anime/update_watch_list_archived", {"watch_list_name": "w", "archived": True}),
    ("/anime/delete_watch_list", {"watch_list_name": "w"}),
    ("/anime/delete_anime_state_from_watch_list", {"anime_id": 42, "watch_list_name": "w"}),
    ("/anime/track_anime", {"anime_item": ITEM, "watch_list_name": "w"}),
    ("/anime/update_anime_favorite", {"anime_id": 42, "favorite": True}),
])
def test_mutations_require_login(api_client, path, body):
    client, svc = api_client
    resp = client.post(path, json=body)
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "NotLoggedIn"
    assert svc.list_watch_lists() == [] and svc.list_anime_states() == []

def test_reads_do_not_require_login(api_client):
    client, svc = api_client
    svc.watch_lists.create("w")
    assert client.get("/anime/list").get_json() == [{"title": "w", "archived": False, "animes": []}]
    assert client.get("/anime/all").get_json() == []
    assert client.get("/anime/get_watch_list?watch_list_name=w").status_code == 200


# ---------- full flow ----------
def test_track_mark_and_remove_flow(api_client, auth_header):
    client, svc = api_client
    h = auth_header
    assert client.post("/anime/add_new_watch_list", json={"watch_list_name": "plan-to-watch"}, headers=h).status_code == 201
    assert client.post("/anime/insert_anime_item", json=ITEM, headers=h).status_code == 201
    assert client.post("/anime/add_item_to_watch_list",
                       json={"anime_id": 42, "watch_list_name": "plan-to-watch"}, headers=h).status_code == 201
    assert client.post("/anime/update_episode_watched_state",
                       json={"anime_id": 42, "ep": 3.5, "watched": True}, headers=h).status_code == 200
    assert client.post("/anime/update_anime_rating", json={"anime_id": 42, "rating": 9}, headers=h).status_code == 200
    assert client.post("/anime/update_anime_favorite", json={"anime_id": 42, "favorite": True}, headers=h).status_code == 200

    state = client.get("/anime/get?anime_id=42").get_json()
    assert state["watched_episodes"] == [3.5]
    assert state["rating"] == 9 and state["favorite"] is True
    assert state["anime_item"]["name"] == "Frieren"

    batch = client.post("/anime/get_anime_states", json={"anime_ids": [42, 7]}).get_json()
    assert [s["anime_id"] for s in batch] == [42]

    resp = client.post("/anime/delete_anime_state_from_watch_list",
                       json={"anime_id": 42, "watch_list_name": "plan-to-watch"}, headers=h)
    assert resp.get_json() == {"purged": True}
    missing = client.get("/anime/get?anime_id=42")
    assert missing.status_code == 404
    assert missing.get_json()["error"] == "AnimeNotFound"

def test_track_anime_endpoint(api_client, auth_header):
    client, svc = api_client
    svc.watch_lists.create("watching")
    resp = client.post("/anime/track_anime", json={"anime_item": ITEM, "watch_list_name": "watching"}, headers=auth_header)
    assert resp.status_code == 201
    assert resp.get_json()["anime_id"] == 42
    assert svc.get_watch_list("watching").animes == [42]


# ---------- error mapping ----------
def test_duplicate_watch_list_is_conflict(api_client, auth_header):
    client, _ = api_client
    client.post("/anime/add_new_watch_list", json={"watch_list_name": "dup"}, headers=auth_header)
    resp = client.post("/anime/add_new_watch_list", json={"watch_list_name": "dup"}, headers=auth_header)
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "Conflict"

def test_missing_watch_list_is_not_found(api_client, auth_header):
    client, _ = api_client
    resp = client.get("/anime/get_watch_list?watch_list_name=ghost")
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "WatchListNotFound"
    resp2 = client.post("/anime/delete_watch_list", json={"watch_list_name": "ghost"}, headers=auth_header)
    assert resp2.status_code == 404

@pytest.mark.parametrize("path, body", [
    ("/anime/insert_anime_item", {"id": 1}),
    ("/anime/update_anime_rating", {"anime_id": 42, "rating": 11}),
    ("/anime/update_episode_watched_state", {"anime_id": "42", "ep": 1, "watched": True}),
    ("/anime/add_new_watch_list", {"watch_list_name": "   "}),
    ("/anime/update_episode_watched_state", {"anime_id": 1, "ep": 10 ** 400, "watched": True}),
    ("/anime/update_episode_watched_state", {"anime_id": 2 ** 63, "ep": 1, "watched": True}),
    ("/anime/update_anime_visibility", {"anime_id": -(2 ** 31) - 1, "visible": False}),
    ("/anime/get_anime_states", {"anime_ids": [1, 10 ** 30]}),
])
def test_bad_input_is_rejected(api_client, auth_header, path, body):
    client, svc = api_client
    svc.watch_lists.create("w")
    resp = client.post(path, json=body, headers=auth_header)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InvalidRequest"

@pytest.mark.parametrize("anime_id", ["abc", "9" * 30, str(2 ** 31), str(-(2 ** 31) - 1)])
def test_get_requires_integer_id_in_range(api_client, anime_id):
    client, _ = api_client
    resp = client.get(f"/anime/get?anime_id={anime_id}")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InvalidRequest"

def test_corrupt_stored_row_is_internal_error(tmp_path):
    db = tmp_path / "corrupt.sqlite"
    app = create_app({"database": str(db), "otp_secret": SECRET, "mock_totp": False})
    client = app.test_client()
    with sqlite3.connect(db) as c:
        c.execute("INSERT INTO anime_state (anime_id, anime_item) VALUES (42, ?)", (json.dumps({"id": 42}),))
    resp = client.get("/anime/get?anime_id=42")
    assert resp.status_code == 500
    assert resp.get_json()["error"] == "InternalError"

def test_cors_headers_present(api_client):
    client, _ = api_client
    resp = client.get("/anime/list")
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
