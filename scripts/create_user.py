"""Create a user directly in the configured database.

Usage:
  python scripts/create_user.py --name alice --mail alice@example.com --password '...' --group editor

NOTE: This is intended for local/dev.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from content_platform.auth.crud import create_user, get_user_by_id, public_user
from content_platform.config import load_config
from content_platform.db import init_db, open_store
from content_platform.models import Role


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--name", required=True)
    ap.add_argument("--mail", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--url", default=None)
    ap.add_argument("--group", choices=[r.group for r in Role], default=Role.SUBSCRIBER.group)
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN, users_table=cfg.USERS_TABLE)

    with open_store(cfg.DB_DSN, users_table=cfg.USERS_TABLE) as store:
        uid = create_user(
            store,
            name=args.name,
            mail=args.mail,
            password=args.password,
            url=args.url,
            role=Role.from_group(args.group),
        )
        u = public_user(get_user_by_id(store, uid) or {})

    print("Created user:")
    print(u)


if __name__ == "__main__":
    main()
