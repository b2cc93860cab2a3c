"""Create the first admin account.

    python create_admin.py --email admin@example.com --password 'change-me' --name 'Admin User'
"""
import argparse
import logging
import sys

from config import Settings
from database import connect
from schemas import User
from stores import UserStore, hash_password

logger = logging.getLogger("create_admin")


def create_admin(users: UserStore, name: str, email: str, password: str) -> dict:
    if users.find_by_email(email):
        raise ValueError(f"A user already exists with this email: {email}")
    return users.create(User(name=name, email=email.lower(), password=hash_password(password), role="admin"))


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create an admin user")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--name", default="Admin User")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    settings = Settings.from_env()
    db = connect(settings)
    try:
        admin = create_admin(UserStore(db), args.name, args.email, args.password)
    except ValueError as e:
        logger.error(str(e))
        return 1
    finally:
        db.client.close()
    logger.info("Admin user created: %s (id %s)", admin["email"], admin["_id"])
    logger.info("Change the password after first login")
    return 0


if __name__ == "__main__":
    sys.exit(main())
