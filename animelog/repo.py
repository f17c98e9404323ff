# animelog/repo.py
import copy
import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Set

from animelog.episodes import EpisodeMark, dump_marks, load_marks
from animelog.errors import StorageConflict, StorageFailure, ValidationError
from animelog.models import AnimeItem, AnimeState, WatchList

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS anime_state (
    anime_id INTEGER PRIMARY KEY,
    anime_item TEXT NOT NULL,
    favorite INTEGER NOT NULL DEFAULT 0,
    watched_episodes TEXT NOT NULL DEFAULT '[]',
    visibility INTEGER NOT NULL DEFAULT 1,
    rating INTEGER
);

CREATE TABLE IF NOT EXISTS anime_list (
    title TEXT PRIMARY KEY,
    archived INTEGER NOT NULL DEFAULT 0,
    animes TEXT NOT NULL DEFAULT '[]'
);
"""


def _decode_marks(raw: str, anime_id: int) -> Set[EpisodeMark]:
    try:
        return load_marks(json.loads(raw))
    except (ValueError, TypeError, OverflowError) as e:
        raise StorageFailure(f"corrupt watched_episodes for anime {anime_id}: {e}", e) from e


def _row_to_state(r: sqlite3.Row) -> AnimeState:
    marks = _decode_marks(r["watched_episodes"], r["anime_id"])
    try:
        item = AnimeItem.from_dict(json.loads(r["anime_item"]))
    except (ValueError, TypeError, ValidationError) as e:
        raise StorageFailure(f"corrupt anime_state row {r['anime_id']}: {e}", e) from e
    return AnimeState(
        anime_id=r["anime_id"],
        anime_item=item,
        favorite=bool(r["favorite"]),
        watched_episodes=marks,
        visibility=bool(r["visibility"]),
        rating=r["rating"],
    )


def _row_to_list(r: sqlite3.Row) -> WatchList:
    try:
        animes = json.loads(r["animes"])
    except (ValueError, TypeError) as e:
        raise StorageFailure(f"corrupt anime_list row {r['title']!r}: {e}", e) from e
    return WatchList(title=r["title"], archived=bool(r["archived"]), animes=animes)


# --- SQLite repo ---
class SqliteRepo:
    """
    Persistence over a single SQLite file. Every method opens its own
    connection and commits on success, so sequences of calls are not atomic.
    Update/delete methods return False when no row matched.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        parent = os.path.dirname(db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

    @contextmanager
    def conn(self):
        try:
            con = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StorageFailure(f"cannot open database {self.db_path}: {e}", e) from e
        con.row_factory = sqlite3.Row
        try:
            yield con
            con.commit()
        except sqlite3.IntegrityError as e:
            raise StorageConflict(f"constraint violated: {e}", e) from e
        except sqlite3.Error as e:
            raise StorageFailure(f"database error: {e}", e) from e
        finally:
            con.close()

    def init_schema(self) -> None:
        with self.conn() as c:
            c.executescript(SCHEMA_SQL)
        logger.info("Schema ready in %s", self.db_path)

    # -- Anime states --
    def create_anime_state(self, s: AnimeState) -> AnimeState:
        with self.conn() as c:
            c.execute(
                "INSERT INTO anime_state (anime_id, anime_item, favorite, watched_episodes, visibility, rating) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (s.anime_id, json.dumps(s.anime_item.to_dict(), ensure_ascii=False), int(s.favorite),
                 json.dumps(dump_marks(s.watched_episodes)), int(s.visibility), s.rating))
            return s

    def get_anime_state(self, anime_id: int) -> Optional[AnimeState]:
        with self.conn() as c:
            r = c.execute("SELECT * FROM anime_state WHERE anime_id = ?", (anime_id,)).fetchone()
            return _row_to_state(r) if r else None

    def get_anime_states(self, anime_ids: Iterable[int]) -> List[AnimeState]:
        ids = list(set(anime_ids))
        if not ids:
            return []
        with self.conn() as c:
            rows = c.execute(
                "SELECT * FROM anime_state WHERE anime_id IN (SELECT value FROM json_each(?))",
                (json.dumps(ids),)).fetchall()
            return [_row_to_state(r) for r in rows]

    def list_anime_states(self) -> List[AnimeState]:
        with self.conn() as c:
            rows = c.execute("SELECT * FROM anime_state ORDER BY anime_id").fetchall()
            return [_row_to_state(r) for r in rows]

    def get_watched_episodes(self, anime_id: int) -> Optional[Set[EpisodeMark]]:
        with self.conn() as c:
            r = c.execute("SELECT watched_episodes FROM anime_state WHERE anime_id = ?", (anime_id,)).fetchone()
            return _decode_marks(r["watched_episodes"], anime_id) if r else None

    def set_watched_episodes(self, anime_id: int, marks: Set[EpisodeMark]) -> bool:
        with self.conn() as c:
            cur = c.execute("UPDATE anime_state SET watched_episodes = ? WHERE anime_id = ?",
                            (json.dumps(dump_marks(marks)), anime_id))
            return cur.rowcount > 0

    def set_visibility(self, anime_id: int, visible: bool) -> bool:
        with self.conn() as c:
            cur = c.execute("UPDATE anime_state SET visibility = ? WHERE anime_id = ?", (int(visible), anime_id))
            return cur.rowcount > 0

    def set_rating(self, anime_id: int, rating: Optional[int]) -> bool:
        with self.conn() as c:
            cur = c.execute("UPDATE anime_state SET rating = ? WHERE anime_id = ?", (rating, anime_id))
            return cur.rowcount > 0

    def set_favorite(self, anime_id: int, favorite: bool) -> bool:
        with self.conn() as c:
            cur = c.execute("UPDATE anime_state SET favorite = ? WHERE anime_id = ?", (int(favorite), anime_id))
            return cur.rowcount > 0

    def delete_anime_state(self, anime_id: int) -> bool:
        with self.conn() as c:
            cur = c.execute("DELETE FROM anime_state WHERE anime_id = ?", (anime_id,))
            return cur.rowcount > 0

    # -- Watch lists --
    def create_watch_list(self, wl: WatchList) -> WatchList:
        with self.conn() as c:
            c.execute("INSERT INTO anime_list (title, archived, animes) VALUES (?, ?, ?)",
                      (wl.title, int(wl.archived), json.dumps(wl.animes)))
            return wl

    def get_watch_list(self, title: str) -> Optional[WatchList]:
        with self.conn() as c:
            r = c.execute("SELECT * FROM anime_list WHERE title = ?", (title,)).fetchone()
            return _row_to_list(r) if r else None

    def list_watch_lists(self) -> List[WatchList]:
        with self.conn() as c:
            rows = c.execute("SELECT * FROM anime_list ORDER BY title").fetchall()
            return [_row_to_list(r) for r in rows]

    def set_watch_list_archived(self, title: str, archived: bool) -> bool:
        with self.conn() as c:
            cur = c.execute("UPDATE anime_list SET archived = ? WHERE title = ?", (int(archived), title))
            return cur.rowcount > 0

    def delete_watch_list(self, title: str) -> bool:
        with self.conn() as c:
            cur = c.execute("DELETE FROM anime_list WHERE title = ?", (title,))
            return cur.rowcount > 0

    def append_anime(self, title: str, anime_id: int) -> bool:
        with self.conn() as c:
            cur = c.execute("UPDATE anime_list SET animes = json_insert(animes, '$[#]', ?) WHERE title = ?",
                            (anime_id, title))
            return cur.rowcount > 0

    def remove_anime(self, title: str, anime_id: int) -> bool:
        """Drop every occurrence of anime_id from the list, keeping the order of the rest."""
        with self.conn() as c:
            cur = c.execute(
                "UPDATE anime_list SET animes = ("
                "  SELECT json_group_array(value) FROM json_each(anime_list.animes) WHERE value != ?)"
                " WHERE title = ?",
                (anime_id, title))
            return cur.rowcount > 0

    def is_anime_referenced(self, anime_id: int) -> bool:
        with self.conn() as c:
            r = c.execute(
                "SELECT 1 FROM anime_list, json_each(anime_list.animes) WHERE json_each.value = ? LIMIT 1",
                (anime_id,)).fetchone()
            return r is not None


# --- In-memory repo (simple, used for unit tests) ---
class InMemoryRepo:
    """Same contract as SqliteRepo; hands out copies so callers cannot mutate storage."""

    def __init__(self):
        self._states: Dict[int, AnimeState] = {}
        self._lists: Dict[str, WatchList] = {}

    def init_schema(self) -> None:
        pass

    # Anime states
    def create_anime_state(self, s: AnimeState) -> AnimeState:
        if s.anime_id in self._states:
            raise StorageConflict(f"anime_state {s.anime_id} already exists")
        self._states[s.anime_id] = copy.deepcopy(s)
        return s

    def get_anime_state(self, anime_id: int) -> Optional[AnimeState]:
        s = self._states.get(anime_id)
        return copy.deepcopy(s) if s else None

    def get_anime_states(self, anime_ids: Iterable[int]):
        return [copy.deepcopy(self._states[i]) for i in set(anime_ids) if i in self._states]

    def list_anime_states(self):
        return [copy.deepcopy(self._states[k]) for k in sorted(self._states)]

    def get_watched_episodes(self, anime_id: int):
        s = self._states.get(anime_id)
        return set(s.watched_episodes) if s else None

    def _update_state(self, anime_id: int, **changes) -> bool:
        s = self._states.get(anime_id)
        if s is None:
            return False
        for k, v in changes.items():
            setattr(s, k, v)
        return True

    def set_watched_episodes(self, anime_id: int, marks): return self._update_state(anime_id, watched_episodes=set(marks))
    def set_visibility(self, anime_id: int, visible: bool): return self._update_state(anime_id, visibility=visible)
    def set_rating(self, anime_id: int, rating): return self._update_state(anime_id, rating=rating)
    def set_favorite(self, anime_id: int, favorite: bool): return self._update_state(anime_id, favorite=favorite)
    def delete_anime_state(self, anime_id: int): return self._states.pop(anime_id, None) is not None

    # Watch lists
    def create_watch_list(self, wl: WatchList) -> WatchList:
        if wl.title in self._lists:
            raise StorageConflict(f"anime_list {wl.title!r} already exists")
        self._lists[wl.title] = copy.deepcopy(wl)
        return wl

    def get_watch_list(self, title: str):
        wl = self._lists.get(title)
        return copy.deepcopy(wl) if wl else None

    def list_watch_lists(self):
        return [copy.deepcopy(self._lists[k]) for k in sorted(self._lists)]

    def set_watch_list_archived(self, title: str, archived: bool) -> bool:
        wl = self._lists.get(title)
        if wl is None:
            return False
        wl.archived = archived
        return True

    def delete_watch_list(self, title: str): return self._lists.pop(title, None) is not None

    def append_anime(self, title: str, anime_id: int) -> bool:
        wl = self._lists.get(title)
        if wl is None:
            return False
        wl.animes.append(anime_id)
        return True

    def remove_anime(self, title: str, anime_id: int) -> bool:
        wl = self._lists.get(title)
        if wl is None:
            return False
        wl.animes = [a for a in wl.animes if a != anime_id]
        return True

    def is_anime_referenced(self, anime_id: int) -> bool:
        return any(anime_id in wl.animes for wl in self._lists.values())
