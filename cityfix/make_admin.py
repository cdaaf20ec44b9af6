# File: cityfix/make_admin.py
"""Promote a registered profile to the admin role.

    python -m cityfix.make_admin someone@example.com
"""
import argparse
import logging
import sys

from sqlalchemy.orm import Session

from cityfix.db.session import SessionLocal
from cityfix.models.user import Profile, UserRole

logger = logging.getLogger(__name__)


def make_admin(db: Session, email: str) -> Profile:
    user = db.query(Profile).filter(Profile.email == email).first()
    if not user:
        raise LookupError(f"No profile registered for {email}")
    user.role = UserRole.admin
    db.commit()
    db.refresh(user)
    return user


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("email")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    with SessionLocal() as db:
        try:
            user = make_admin(db, args.email)
        except LookupError as e:
            logger.error("%s", e)
            return 1
    logger.info("Successfully updated %s to admin role", user.email)
    return 0


if __name__ == "__main__":
    sys.exit(main())
