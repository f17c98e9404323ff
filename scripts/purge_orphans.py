# scripts/purge_orphans.py
# Delete anime states that no watch list references any more.
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from run import configure_logging, load_config  # noqa: E402
from animelog.repo import SqliteRepo  # noqa: E402
from animelog.service import AnimeService  # noqa: E402

cfg = load_config()
configure_logging(cfg.get("logging_level", "INFO"), cfg.get("log_file"))
purged = AnimeService(SqliteRepo(cfg["database"])).purge_orphans()
logging.getLogger("purge_orphans").info("purged %d states: %s", len(purged), purged)
