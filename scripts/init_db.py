import sys
from pathlib import Path

# Ensure project root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from content_platform.auth import bootstrap_admin_if_needed
from content_platform.config import load_config
from content_platform.db import init_db


def main() -> None:
    cfg = load_config()
    init_db(cfg.DB_DSN, users_table=cfg.USERS_TABLE)
    boot = bootstrap_admin_if_needed(cfg)
    if boot:
        print(f"Bootstrapped administrator: {boot.get('name')}")

    print(f"DB initialized: {cfg.DB_DSN} (users table: {cfg.USERS_TABLE})")


if __name__ == "__main__":
    main()
