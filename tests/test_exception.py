import pytest
from animelog.errors import (AnimeLogError, AnimeNotFound, WatchListNotFound, EpisodeNotFound, ValidationError,
                             Unauthorized, OtpInvalid, StorageFailure, StorageConflict)
from animelog.models import AnimeItem, require_field
from animelog.repo import InMemoryRepo
from animelog.service import AnimeService

@pytest.fixture
def svc():
    return AnimeService(InMemoryRepo())

def test_not_found_messages_name_the_target(svc):
    with pytest.raises(AnimeNotFound, match="Cannot find anime with id 77") as exc:
        svc.get_anime_state(77)
    assert exc.value.anime_id == 77
    with pytest.raises(WatchListNotFound, match="Cannot find watch list with title later") as exc2:
        svc.get_watch_list("later")
    assert exc2.value.title == "later"

@pytest.mark.parametrize("exc, tag", [
    (AnimeNotFound(1), "AnimeNotFound"),
    (WatchListNotFound("x"), "WatchListNotFound"),
    (EpisodeNotFound(3), "EpisodeNotFound"),
    (ValidationError("bad"), "InvalidRequest"),
    (Unauthorized(), "NotLoggedIn"),
    (OtpInvalid(), "OtpNotValid"),
    (StorageFailure("boom"), "InternalError"),
    (StorageConflict("dup"), "Conflict"),
])
def test_every_error_carries_a_tag(exc, tag):
    assert isinstance(exc, AnimeLogError)
    assert exc.tag == tag

def test_storage_conflict_is_a_storage_failure():
    cause = RuntimeError("unique")
    err = StorageConflict("dup", cause)
    assert isinstance(err, StorageFailure)
    assert err.cause is cause

def test_anime_item_requires_all_fields():
    with pytest.raises(ValidationError, match="anime_item.name is required"):
        AnimeItem.from_dict({"id": 1})
    with pytest.raises(ValidationError, match="must be an object"):
        AnimeItem.from_dict(["not", "a", "dict"])

def test_anime_item_rejects_bad_nested_values():
    base = {"id": 1, "name": "n", "name_cn": "n", "summary": "", "date": "", "eps": 1, "total_episodes": 1,
            "images": {"large": "", "common": "", "medium": "", "small": ""}}
    with pytest.raises(ValidationError):
        AnimeItem.from_dict({**base, "id": True})
    with pytest.raises(ValidationError):
        AnimeItem.from_dict({**base, "images": {"large": ""}})
    with pytest.raises(ValidationError):
        AnimeItem.from_dict({**base, "tags": "action"})
    item = AnimeItem.from_dict({**base, "rating": {"rank": 1, "total": 2, "score": 9}})
    assert item.rating.score == 9.0

def test_episode_value_must_be_numeric(svc):
    svc.watch_lists.create("w")
    svc.track_anime(AnimeItem.from_dict({"id": 1, "name": "n", "name_cn": "n", "summary": "", "date": "", "eps": 1,
                                         "total_episodes": 1,
                                         "images": {"large": "", "common": "", "medium": "", "small": ""}}), "w")
    with pytest.raises(ValidationError):
        svc.anime_states.set_episode_watched(1, float("nan"), True)

@pytest.mark.parametrize("value", [2 ** 31, -(2 ** 31) - 1, 10 ** 30])
def test_integers_outside_32_bits_are_rejected(value):
    with pytest.raises(ValidationError, match="out of range"):
        require_field({"anime_id": value}, "anime_id", int, "request")
    assert require_field({"anime_id": 2 ** 31 - 1}, "anime_id", int, "request") == 2 ** 31 - 1

def test_huge_episode_number_is_rejected():
    with pytest.raises(ValidationError, match="out of range"):
        require_field({"ep": 10 ** 400}, "ep", float, "request")

def test_huge_episode_number_rejected_by_store(svc):
    svc.watch_lists.create("w")
    svc.track_anime(AnimeItem.from_dict({"id": 1, "name": "n", "name_cn": "n", "summary": "", "date": "", "eps": 1,
                                         "total_episodes": 1,
                                         "images": {"large": "", "common": "", "medium": "", "small": ""}}), "w")
    with pytest.raises(ValidationError):
        svc.anime_states.set_episode_watched(1, 10 ** 400, True)
