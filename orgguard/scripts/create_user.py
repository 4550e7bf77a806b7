"""
Create a user (e.g. first admin). Run from project root:
  python -m orgguard.scripts.create_user EMAIL PASSWORD [role] [--manager-id ID]
Example:
  python -m orgguard.scripts.create_user admin@example.com your-secure-password ADMIN
"""
import argparse
import logging
import sys

from orgguard.core.database import SessionLocal
from orgguard.core.security import (
    EMAIL_MAX_LEN,
    EMAIL_MIN_LEN,
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    hash_password,
)
from orgguard.models.user import User
from orgguard.services.errors import MalformedIdentifierError
from orgguard.services.policy import ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_MANAGER
from orgguard.services.store import ensure_user_id

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create an orgguard user (no registration UI).")
    parser.add_argument("email", help="Login email (3-255 chars)")
    parser.add_argument("password", help="Password (8-128 chars)")
    parser.add_argument(
        "role",
        nargs="?",
        default=ROLE_EMPLOYEE,
        type=str.upper,
        choices=[ROLE_EMPLOYEE, ROLE_MANAGER, ROLE_ADMIN],
    )
    parser.add_argument("--manager-id", default=None, help="Id of an existing MANAGER or ADMIN")
    parser.add_argument("--first-name", default="")
    parser.add_argument("--last-name", default="")
    parser.add_argument("--position", default=None)
    args = parser.parse_args()

    email = args.email.strip().lower()
    if not (EMAIL_MIN_LEN <= len(email) <= EMAIL_MAX_LEN) or "@" not in email:
        print("Invalid email.", file=sys.stderr)
        return 1
    if not (PASSWORD_MIN_LEN <= len(args.password) <= PASSWORD_MAX_LEN):
        print(
            f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters.", file=sys.stderr
        )
        return 1
    if args.manager_id is not None:
        try:
            ensure_user_id(args.manager_id, "manager id")
        except MalformedIdentifierError as e:
            print(e.message, file=sys.stderr)
            return 1

    db = SessionLocal()
    try:
        existing = db.query(User).filter(User.email == email).first()
        if existing:
            print(f"User '{email}' already exists.", file=sys.stderr)
            return 1
        if args.manager_id is not None:
            manager = db.get(User, args.manager_id)
            if manager is None:
                print(f"Manager '{args.manager_id}' not found.", file=sys.stderr)
                return 1
            if manager.role not in (ROLE_MANAGER, ROLE_ADMIN):
                print("Selected manager is not a manager or admin.", file=sys.stderr)
                return 1
        user = User(
            email=email,
            password_hash=hash_password(args.password),
            first_name=args.first_name,
            last_name=args.last_name,
            position=args.position,
            role=args.role,
            manager_id=args.manager_id,
        )
        db.add(user)
        db.commit()
        logger.info("Created user", extra={"user_id": user.id, "role": args.role})
        print(f"Created user '{email}' ({user.id}) with role '{args.role}'.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
