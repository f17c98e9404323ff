# animelog/stores.py
import logging
from typing import Iterable, List, Optional

from animelog.episodes import canonicalize
from animelog.errors import AnimeNotFound, ValidationError, WatchListNotFound
from animelog.models import AnimeItem, AnimeState, WatchList

logger = logging.getLogger(__name__)


class AnimeStateStore:
    """
    Per-anime watch state. This store does not know about watch lists: inserting
    a state without adding its id to a list leaves an orphan, and only
    AnimeService decides when a state gets deleted.
    """

    def __init__(self, repo):
        self.repo = repo

    def get(self, anime_id: int) -> AnimeState:
        """Get a state by anime id or raise AnimeNotFound."""
        s = self.repo.get_anime_state(anime_id)
        if s is None:
            logger.debug("get: anime %s not found", anime_id)
            raise AnimeNotFound(anime_id)
        return s

    def exists(self, anime_id: int) -> bool:
        return self.repo.get_anime_state(anime_id) is not None

    def insert(self, item: AnimeItem, visibility: bool = True) -> AnimeState:
        s = AnimeState(anime_id=item.id, anime_item=item, visibility=visibility)
        created = self.repo.create_anime_state(s)
        logger.info("Inserted anime state id=%s name=%s", item.id, item.name)
        return created

    def set_episode_watched(self, anime_id: int, episode: float, watched: bool) -> AnimeState:
        """
        Mark or unmark one episode. This reads the whole set, edits it and
        writes it back without any version check: two concurrent calls for the
        same anime can lose one of the edits (last write wins).
        """
        try:
            mark = canonicalize(episode)
        except (TypeError, ValueError, OverflowError) as e:
            raise ValidationError(str(e)) from e
        marks = self.repo.get_watched_episodes(anime_id)
        if marks is None:
            raise AnimeNotFound(anime_id)
        if watched:
            marks.add(mark)
        else:
            marks.discard(mark)
        if not self.repo.set_watched_episodes(anime_id, marks):
            raise AnimeNotFound(anime_id)
        logger.info("Episode %s of anime %s marked watched=%s", mark, anime_id, watched)
        return self.get(anime_id)

    def set_visibility(self, anime_id: int, visible: bool) -> None:
        if not self.repo.set_visibility(anime_id, visible):
            raise AnimeNotFound(anime_id)
        logger.info("Anime %s visibility=%s", anime_id, visible)

    def set_rating(self, anime_id: int, rating: Optional[int]) -> None:
        """Set a 1-10 rating; None clears it."""
        if rating is not None and (isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 10):
            logger.warning("set_rating: invalid rating %r for anime %s", rating, anime_id)
            raise ValidationError("rating must be an integer between 1 and 10")
        if not self.repo.set_rating(anime_id, rating):
            raise AnimeNotFound(anime_id)
        logger.info("Anime %s rating=%s", anime_id, rating)

    def set_favorite(self, anime_id: int, favorite: bool) -> None:
        if not self.repo.set_favorite(anime_id, favorite):
            raise AnimeNotFound(anime_id)
        logger.info("Anime %s favorite=%s", anime_id, favorite)

    def get_many(self, anime_ids: Iterable[int]) -> List[AnimeState]:
        """Batch fetch; ids without a state are skipped and order is not preserved."""
        return self.repo.get_anime_states(anime_ids)

    def get_all(self) -> List[AnimeState]:
        # unbounded scan; fine for a single user's collection
        return self.repo.list_anime_states()

    def delete(self, anime_id: int) -> None:
        if not self.repo.delete_anime_state(anime_id):
            raise AnimeNotFound(anime_id)
        logger.info("Deleted anime state id=%s", anime_id)


class WatchListStore:
    """Named watch lists and the ordered anime ids they hold."""

    def __init__(self, repo):
        self.repo = repo

    @staticmethod
    def _clean_title(title: str) -> str:
        """Titles are compared after stripping surrounding whitespace."""
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("watch list title required")
        return title.strip()

    def get_all(self) -> List[WatchList]:
        return self.repo.list_watch_lists()

    def get(self, title: str) -> WatchList:
        title = self._clean_title(title)
        wl = self.repo.get_watch_list(title)
        if wl is None:
            logger.debug("get: watch list %r not found", title)
            raise WatchListNotFound(title)
        return wl

    def create(self, title: str) -> WatchList:
        """Create an empty list. A duplicate title fails with StorageConflict."""
        wl = WatchList(title=self._clean_title(title))
        created = self.repo.create_watch_list(wl)
        logger.info("Created watch list %r", created.title)
        return created

    def set_archived(self, title: str, archived: bool) -> None:
        title = self._clean_title(title)
        if not self.repo.set_watch_list_archived(title, archived):
            raise WatchListNotFound(title)
        logger.info("Watch list %r archived=%s", title, archived)

    def delete(self, title: str) -> None:
        title = self._clean_title(title)
        if not self.repo.delete_watch_list(title):
            raise WatchListNotFound(title)
        logger.info("Deleted watch list %r", title)

    def add_anime(self, title: str, anime_id: int) -> None:
        """Append anime_id. Appending an id already present stores it twice."""
        title = self._clean_title(title)
        if not self.repo.append_anime(title, anime_id):
            raise WatchListNotFound(title)
        logger.info("Added anime %s to watch list %r", anime_id, title)

    def remove_anime(self, title: str, anime_id: int) -> None:
        title = self._clean_title(title)
        if not self.repo.remove_anime(title, anime_id):
            raise WatchListNotFound(title)
        logger.info("Removed anime %s from watch list %r", anime_id, title)

    def is_referenced(self, anime_id: int) -> bool:
        return self.repo.is_anime_referenced(anime_id)
