# animelog/service.py
import logging
from typing import List

from animelog.errors import AnimeNotFound
from animelog.models import AnimeItem, AnimeState, WatchList
from animelog.stores import AnimeStateStore, WatchListStore

logger = logging.getLogger(__name__)


class AnimeService:
    """
    Keeps anime states and watch-list membership consistent.

    A state should exist exactly when some watch list references its anime id.
    This class is the only place that deletes states, and it does so as a
    follow-up to removing references. None of the sequences here run in a
    transaction: a concurrent add_anime_to_list racing a removal of the same
    id can end with the state deleted while a list still references it.
    Callers that need strict consistency must serialize these calls.
    """

    def __init__(self, repo):
        """
        Initialize service with a repository instance (SqliteRepo or InMemoryRepo).
        """
        self.repo = repo
        self.anime_states = AnimeStateStore(repo)
        self.watch_lists = WatchListStore(repo)
        logger.debug("AnimeService initialized with repo %s", type(repo).__name__)

    # ---- Membership ----
    def remove_anime_from_list(self, anime_id: int, title: str) -> bool:
        """
        Remove anime_id from the list, then delete its state if no list refers
        to it any more. Returns True when the state was purged.
        """
        self.watch_lists.remove_anime(title, anime_id)
        if self.watch_lists.is_referenced(anime_id):
            return False
        # check-then-act: a concurrent add between the check and this delete is lost
        try:
            self.anime_states.delete(anime_id)
        except AnimeNotFound:
            logger.debug("remove_anime_from_list: anime %s had no state to purge", anime_id)
            return False
        logger.info("Purged orphaned anime state id=%s after removal from %r", anime_id, title)
        return True

    def add_anime_to_list(self, anime_id: int, title: str) -> None:
        """Reference an anime that already has a state."""
        if not self.anime_states.exists(anime_id):
            logger.warning("add_anime_to_list: anime %s has no state", anime_id)
            raise AnimeNotFound(anime_id)
        self.watch_lists.add_anime(title, anime_id)

    def track_anime(self, item: AnimeItem, title: str) -> AnimeState:
        """
        Insert the state (unless it already exists) and add it to the list.
        Between the two steps the state is briefly unreferenced; if the list is
        missing the freshly inserted state is purged again.
        """
        created = False
        if not self.anime_states.exists(item.id):
            self.anime_states.insert(item)
            created = True
        try:
            self.watch_lists.add_anime(title, item.id)
        except Exception:
            if created and not self.watch_lists.is_referenced(item.id):
                self.anime_states.delete(item.id)
            raise
        return self.anime_states.get(item.id)

    # ---- Watch lists ----
    def delete_watch_list(self, title: str) -> List[int]:
        """Delete a list and purge the states it was the last reference to."""
        wl = self.watch_lists.get(title)
        self.watch_lists.delete(title)
        purged = []
        for anime_id in dict.fromkeys(wl.animes):
            if self.watch_lists.is_referenced(anime_id):
                continue
            try:
                self.anime_states.delete(anime_id)
            except AnimeNotFound:
                continue
            purged.append(anime_id)
        if purged:
            logger.info("Deleting %r purged anime states %s", title, purged)
        return purged

    def purge_orphans(self) -> List[int]:
        """Sweep every state and delete the ones no list references."""
        referenced = set()
        for wl in self.watch_lists.get_all():
            referenced.update(wl.animes)
        purged = []
        for s in self.anime_states.get_all():
            if s.anime_id in referenced:
                continue
            # re-check against storage; a list may have gained the id since the scan
            if self.watch_lists.is_referenced(s.anime_id):
                continue
            try:
                self.anime_states.delete(s.anime_id)
            except AnimeNotFound:
                continue
            purged.append(s.anime_id)
        logger.info("Orphan sweep purged %d anime states", len(purged))
        return purged

    # ---- Read side ----
    def list_watch_lists(self) -> List[WatchList]:
        return self.watch_lists.get_all()

    def get_watch_list(self, title: str) -> WatchList:
        return self.watch_lists.get(title)

    def get_anime_state(self, anime_id: int) -> AnimeState:
        return self.anime_states.get(anime_id)

    def get_anime_states(self, anime_ids) -> List[AnimeState]:
        return self.anime_states.get_many(anime_ids)

    def list_anime_states(self) -> List[AnimeState]:
        return self.anime_states.get_all()
