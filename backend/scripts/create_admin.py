"""Create (or promote) an admin account.
Usage: python scripts/create_admin.py --email EMAIL --password PASSWORD [--name NAME]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `app` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from app import models, repositories
from app.database import engine, create_db_and_tables
from app.services import PWD_CTX
from app.utils.validators import validate_email, validate_password


def main(email: str, password: str, name: str = 'Administrator') -> models.User:
    """Create the admin, or reset the password and role of an existing user."""
    create_db_and_tables()
    email = validate_email(email)
    validate_password(password, strong=False)
    with Session(engine, expire_on_commit=False) as session:
        repo = repositories.UserRepository(session)
        user = repo.get_by_email(email)
        if user is None:
            user = repo.create(models.User(name=name, email=email,
                                           password_hash=PWD_CTX.hash(password), role='admin'))
            print(f'Created admin {user.email} (id {user.id})')
        else:
            user.role = 'admin'
            user.is_active = True
            user.password_hash = PWD_CTX.hash(password)
            user = repo.save(user)
            print(f'Updated existing user {user.email} (id {user.id}) to admin')
        return user


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--email', required=True)
    parser.add_argument('--password', required=True)
    parser.add_argument('--name', default='Administrator')
    args = parser.parse_args()
    try:
        main(args.email, args.password, args.name)
    except ValueError as e:
        print(f'Error: {e}')
        sys.exit(1)
