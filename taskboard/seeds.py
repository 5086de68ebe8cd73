from __future__ import annotations

import argparse
import logging
from contextlib import contextmanager

from faker import Faker
from sqlalchemy import delete

from .config import settings
from .database import Base, SessionLocal, engine
from .logging_setup import setup_logging
from .models import Account, Todo, User, UserRole
from .repositories import ensure_roles

logger = logging.getLogger(__name__)

fake = Faker()
Faker.seed(1234)

USERS = [
    {"name": "Alice", "email": "alice@example.com"},
    {"name": "Bob", "email": "bob@example.com"},
]

TODOS = [
    {"description": "Learn FastAPI with SQLAlchemy"},
    {"description": "Write the first seed", "complete": True},
    {"description": "Master server actions"},
    {"description": "Deploy the dashboard", "complete": False},
]


@contextmanager
def session_scope():
    """Provide a transactional scope around a series of operations."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def seed(extra_todos: int = 0) -> None:
    """Reset users and todos, then insert the demo data.

    Children are deleted before their parents.
    """
    Base.metadata.create_all(bind=engine)
    with session_scope() as session:
        logger.info("Clearing todos and users")
        session.execute(delete(Todo))
        session.execute(delete(Account))
        session.execute(delete(UserRole))
        session.execute(delete(User))

        logger.info("Inserting %d users", len(USERS))
        for data in USERS:
            user = User(**data)
            session.add(user)
            session.flush()
            ensure_roles(session, user, ["user"])

        logger.info("Inserting %d todos", len(TODOS) + extra_todos)
        session.add_all(Todo(**data) for data in TODOS)
        for _ in range(extra_todos):
            session.add(
                Todo(
                    description=fake.sentence(nb_words=5).rstrip("."),
                    complete=fake.boolean(chance_of_getting_true=25),
                )
            )
    logger.info("Seed finished")


def main() -> None:
    parser = argparse.ArgumentParser(description="Reset and seed the database.")
    parser.add_argument(
        "--todos",
        type=int,
        default=0,
        help="Number of extra random todos to create (default: 0).",
    )
    args = parser.parse_args()
    setup_logging(settings.log_level)
    seed(extra_todos=args.todos)


if __name__ == "__main__":
    main()
