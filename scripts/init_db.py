# scripts/init_db.py
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from run import load_config  # noqa: E402
from animelog.repo import SqliteRepo  # noqa: E402

DB = sys.argv[1] if len(sys.argv) > 1 else load_config()["database"]
SqliteRepo(DB).init_schema()
print("initialized db at", DB)
