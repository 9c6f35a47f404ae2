#!/usr/bin/env python3
"""Grant a seeded role to a user (idempotent).

Usage:
  python scripts/grant_role.py --email budi@example.com --role reviewer
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.hse.models import Role, User
from scripts._db_utils import resolve_db_url, script_session


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="User email")
    parser.add_argument("--role", default="admin", help="Role key (admin, doc_controller, reviewer, employee)")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    args = parser.parse_args(argv)

    with script_session(resolve_db_url(args.database_url)) as s:
        user = s.query(User).filter(User.email.ilike(args.email)).one_or_none()
        if not user:
            print(f"User not found: {args.email}")
            return
        role = s.query(Role).filter(Role.key == args.role).one_or_none()
        if not role:
            print(f"Role not found: {args.role}. Run python scripts/init_db.py first.")
            return
        if role in (user.roles or []):
            print(f"User already has role {args.role}: {args.email}")
            return
        user.roles.append(role)
    print(f"Role {args.role} granted to {args.email}")


if __name__ == "__main__":
    main()
