"""
CLI helper to create the record store schema and optionally seed a user.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from teamboard.auth import Authenticator, EmailTakenError
from teamboard.config import get_settings
from teamboard.dependencies import create_record_store

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Initialize the Teamboard record store")
    parser.add_argument(
        "--email",
        type=str,
        default=None,
        help="Seed a user with this email",
    )
    parser.add_argument(
        "--password",
        type=str,
        default=None,
        help="Password for the seeded user",
    )
    parser.add_argument(
        "--name",
        type=str,
        default=None,
        help="Display name for the seeded user",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    if bool(args.email) != bool(args.password):
        parser.error("--email and --password must be given together")

    store = create_record_store(get_settings())
    try:
        store.init_schema()
        if not args.email:
            return 0
        try:
            user = Authenticator(store).sign_up(args.email, args.password, name=args.name)
        except EmailTakenError:
            logger.warning("A user with email %s already exists", args.email)
            return 1
        logger.info("Seeded user %s (%s)", user.email, user.id)
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
