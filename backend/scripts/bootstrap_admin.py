#!/usr/bin/env python3
"""Create or update the first wiki admin account.

Example:
  python scripts/bootstrap_admin.py --username admin --password 'ChangeMe123!'
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from sqlalchemy import select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.security import admin_password_problems, hash_password
from app.db.models import User, UserRole
from app.db.session import SessionLocal


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bootstrap wiki admin account")
    parser.add_argument("--username", default="admin")
    parser.add_argument("--password", default="")
    parser.add_argument("--role", choices=[r.value for r in UserRole], default=UserRole.ADMIN.value)
    parser.add_argument("--reset-password", action="store_true")
    parser.add_argument("--skip-password-check", action="store_true")
    return parser.parse_args()


def _checked_hash(args: argparse.Namespace) -> str:
    if not args.password:
        raise SystemExit("--password is required")
    if not args.skip_password_check:
        problems = admin_password_problems(args.password)
        if problems:
            raise SystemExit("weak password: " + "; ".join(problems))
    return hash_password(args.password)


def main() -> None:
    args = parse_args()
    role = UserRole(args.role)

    with SessionLocal() as db:
        user = db.execute(select(User).where(User.username == args.username)).scalar_one_or_none()

        if user:
            changed = False
            if user.role != role:
                user.role = role
                changed = True
            if not user.is_active:
                user.is_active = True
                changed = True
            if args.reset_password:
                user.password_hash = _checked_hash(args)
                changed = True

            if changed:
                db.commit()
                print(f"updated user: {user.username} role={user.role.value}")
            else:
                print(f"user already exists: {user.username} role={user.role.value}")
            return

        user = User(username=args.username, password_hash=_checked_hash(args), role=role, is_active=True)
        db.add(user)
        db.commit()
        print(f"created user: {user.username} role={user.role.value}")


if __name__ == "__main__":
    main()
