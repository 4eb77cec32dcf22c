"""
Create an admin user for the PK55 API.

Usage: python scripts/create_user.py <username> <password>
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pk55_api.config import get_settings
from pk55_api.db import DbClient, UserExistsError
from pk55_api.dependencies import get_db_client
from pk55_api.security import hash_password

logger = logging.getLogger(__name__)


def create_user(db: DbClient, username: str, password: str, rounds: int) -> int:
    username = username.strip()
    if not username or not password:
        logger.error("Username and password are required")
        return 1
    try:
        user = db.create_user(username, hash_password(password, rounds))
    except UserExistsError:
        logger.error('User "%s" already exists', username)
        return 1
    logger.info("User created successfully: %s (id %s)", user.username, user.user_id)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a PK55 API user")
    parser.add_argument("username", help="Login name for the new user")
    parser.add_argument("password", help="Plain-text password (stored hashed)")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    settings = get_settings()
    if not settings.database_url:
        logger.warning("DATABASE_URL is not set; the user will only live in memory")
    return create_user(
        get_db_client(), args.username, args.password, settings.password_salt_rounds
    )


if __name__ == "__main__":
    raise SystemExit(main())
