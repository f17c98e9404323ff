# animelog/errors.py
from typing import Optional


class AnimeLogError(Exception):
    """Base class for every error raised by the tracker."""
    tag = "InternalError"


# --- Domain lookups ---
class AnimeNotFound(AnimeLogError):
    tag = "AnimeNotFound"

    def __init__(self, anime_id: int):
        self.anime_id = anime_id
        super().__init__(f"Cannot find anime with id {anime_id}")


class WatchListNotFound(AnimeLogError):
    tag = "WatchListNotFound"

    def __init__(self, title: str):
        self.title = title
        super().__init__(f"Cannot find watch list with title {title}")


class EpisodeNotFound(AnimeLogError):
    """Declared for the episode endpoints; no current operation raises it."""
    tag = "EpisodeNotFound"

    def __init__(self, episode):
        self.episode = episode
        super().__init__(f"Cannot find episode {episode}")


class ValidationError(AnimeLogError):
    """Raised when input or business validation fails."""
    tag = "InvalidRequest"


# --- Auth ---
class Unauthorized(AnimeLogError):
    tag = "NotLoggedIn"

    def __init__(self, message: str = "not logged in"):
        super().__init__(message)


class OtpInvalid(AnimeLogError):
    tag = "OtpNotValid"

    def __init__(self):
        super().__init__("one-time password is not valid")


# --- Storage ---
class StorageFailure(AnimeLogError):
    """Any unexpected fault coming out of the database layer."""
    tag = "InternalError"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class StorageConflict(StorageFailure):
    """A unique constraint rejected the write (duplicate title or anime id)."""
    tag = "Conflict"
