#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from design_studio.core.config import IS_DEV  # noqa: E402
from design_studio.core.database import SessionLocal  # noqa: E402
from design_studio.models.user import USER_ROLES, User  # noqa: E402
from design_studio.services.auth import create_access_token  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or promote a portal user and print a bearer token.")
    parser.add_argument("--open-id", required=True, help="Identity provider subject")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", required=True)
    parser.add_argument("--role", default="admin", choices=USER_ROLES)
    parser.add_argument("--force", action="store_true", help="Allow running outside the dev environment")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    if not IS_DEV and not args.force:
        print("Refusing to bootstrap outside dev. Use --force.")
        return 1

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.open_id == args.open_id).first()
        created = user is None
        if created:
            user = User(open_id=args.open_id)
            db.add(user)
        user.email = args.email
        user.name = args.name
        user.role = args.role
        db.commit()
        db.refresh(user)
        token = create_access_token(user.id, extra={"role": user.role})
    finally:
        db.close()

    action = "created" if created else "updated"
    print(f"User {action}: id={user.id} email={user.email} role={user.role}")
    print(f"Bearer token: {token}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
