"""Storage interfaces and their SQLAlchemy implementations.

Handlers and actions depend on the protocols; a repository bound to the
request's database session is injected per request.
"""

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .models import Account, Role, Todo, User

logger = logging.getLogger(__name__)

DEFAULT_ROLES = {
    "admin": "Platform administrator",
    "user": "Regular signed-in user",
}


class StorageError(RuntimeError):
    """Raised when the database rejects a write."""


class EmailAlreadyExistsError(StorageError):
    def __init__(self, email: str):
        super().__init__(f"A user with email {email} already exists")
        self.email = email


class UserRepository(Protocol):
    def find_by_id(self, user_id: str) -> Optional[User]: ...

    def find_by_email(self, email: str) -> Optional[User]: ...

    def find_by_account(self, provider: str, provider_account_id: str) -> Optional[User]: ...

    def create_user(
        self,
        *,
        email: str,
        name: Optional[str],
        password_hash: Optional[str] = None,
        image: Optional[str] = None,
        roles: Iterable[str] = ("user",),
    ) -> User: ...

    def create_oauth_user(
        self,
        *,
        email: str,
        name: Optional[str],
        image: Optional[str],
        provider: str,
        provider_account_id: str,
        access_token: Optional[str] = None,
        roles: Iterable[str] = ("user",),
    ) -> User: ...


class TodoRepository(Protocol):
    def list(self, *, take: int, skip: int) -> List[Todo]: ...

    def list_ordered(self, user_id: Optional[str] = None) -> List[Todo]: ...

    def get(self, todo_id: str) -> Optional[Todo]: ...

    def get_for_user(self, todo_id: str, user_id: str) -> Optional[Todo]: ...

    def create(
        self, *, description: str, complete: bool = False, user_id: Optional[str] = None
    ) -> Todo: ...

    def update(self, todo: Todo, **fields) -> Todo: ...

    def delete(self, todo: Todo) -> None: ...

    def delete_completed(self) -> int: ...


@contextmanager
def _transaction(db: Session, email: Optional[str] = None) -> Iterator[None]:
    """Commit the statements run inside the block, or roll them all back.

    With ``email`` set, a unique constraint violation is reported as
    EmailAlreadyExistsError; every other database error becomes StorageError.
    """
    try:
        yield
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if email is not None:
            raise EmailAlreadyExistsError(email) from exc
        raise StorageError("Database write failed") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageError("Database write failed") from exc


def ensure_roles(db: Session, user: User, role_names: Iterable[str]) -> None:
    role_names = list(role_names)
    existing = {
        role.name: role
        for role in db.scalars(select(Role).where(Role.name.in_(role_names))).all()
    }
    for name in role_names:
        role = existing.get(name)
        if role is None:
            role = Role(name=name, description=DEFAULT_ROLES.get(name))
            db.add(role)
            existing[name] = role
        if role not in user.roles:
            user.roles.append(role)


class SqlAlchemyUserRepository:
    def __init__(self, db: Session) -> None:
        self._db = db

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self._db.get(User, user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        return self._db.scalar(select(User).where(User.email == email))

    def find_by_account(self, provider: str, provider_account_id: str) -> Optional[User]:
        stmt = (
            select(User)
            .join(Account, Account.user_id == User.id)
            .where(
                Account.provider == provider,
                Account.provider_account_id == provider_account_id,
            )
        )
        return self._db.scalar(stmt)

    def create_user(
        self,
        *,
        email: str,
        name: Optional[str],
        password_hash: Optional[str] = None,
        image: Optional[str] = None,
        roles: Iterable[str] = ("user",),
    ) -> User:
        with _transaction(self._db, email=email):
            user = self._add_user(email, name, password_hash, image, roles)

        self._db.refresh(user)
        logger.info("Created user %s (email: %s)", user.id, user.email)
        return user

    def create_oauth_user(
        self,
        *,
        email: str,
        name: Optional[str],
        image: Optional[str],
        provider: str,
        provider_account_id: str,
        access_token: Optional[str] = None,
        roles: Iterable[str] = ("user",),
    ) -> User:
        """Create a user together with its linked provider account.

        Both rows are written in one transaction; on failure neither exists.
        """
        with _transaction(self._db, email=email):
            user = self._add_user(email, name, None, image, roles)
            self._db.add(
                Account(
                    user_id=user.id,
                    provider=provider,
                    provider_account_id=provider_account_id,
                    access_token=access_token,
                )
            )

        self._db.refresh(user)
        logger.info("Created user %s from %s account %s", user.id, provider, provider_account_id)
        return user

    def _add_user(
        self,
        email: str,
        name: Optional[str],
        password_hash: Optional[str],
        image: Optional[str],
        roles: Iterable[str],
    ) -> User:
        user = User(email=email, name=name, password_hash=password_hash, image=image)
        self._db.add(user)
        self._db.flush()
        ensure_roles(self._db, user, roles)
        self._db.flush()
        return user


class SqlAlchemyTodoRepository:
    def __init__(self, db: Session) -> None:
        self._db = db

    def list(self, *, take: int, skip: int) -> List[Todo]:
        stmt = (
            select(Todo)
            .order_by(Todo.created_at, Todo.id)
            .offset(skip)
            .limit(take)
        )
        return list(self._db.scalars(stmt).all())

    def list_ordered(self, user_id: Optional[str] = None) -> List[Todo]:
        """Todos sorted by description, optionally limited to one owner."""
        stmt = select(Todo).order_by(Todo.description.asc())
        if user_id is not None:
            stmt = stmt.where(Todo.user_id == user_id)
        return list(self._db.scalars(stmt).all())

    def get(self, todo_id: str) -> Optional[Todo]:
        return self._db.get(Todo, todo_id)

    def get_for_user(self, todo_id: str, user_id: str) -> Optional[Todo]:
        return self._db.scalar(
            select(Todo).where(Todo.id == todo_id, Todo.user_id == user_id)
        )

    def create(
        self, *, description: str, complete: bool = False, user_id: Optional[str] = None
    ) -> Todo:
        todo = Todo(description=description, complete=complete, user_id=user_id)
        with _transaction(self._db):
            self._db.add(todo)
        self._db.refresh(todo)
        return todo

    def update(self, todo: Todo, **fields) -> Todo:
        with _transaction(self._db):
            for key, value in fields.items():
                setattr(todo, key, value)
        self._db.refresh(todo)
        return todo

    def delete(self, todo: Todo) -> None:
        with _transaction(self._db):
            self._db.delete(todo)

    def delete_completed(self) -> int:
        with _transaction(self._db):
            result = self._db.execute(delete(Todo).where(Todo.complete.is_(True)))
        return result.rowcount
