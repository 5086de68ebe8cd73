import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

from passlib.context import CryptContext

from .config import settings
from .models import User
from .repositories import EmailAlreadyExistsError, UserRepository

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds
)

NO_EMAIL = "no-email"
NO_ROLES = "no-roles"
NO_UUID = "no-uuid"


class InactiveUserError(Exception):
    """Raised while issuing or refreshing a token for a deactivated user."""


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        logger.warning("Stored password hash could not be identified")
        return False


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def sign_in_email_password(
    users: UserRepository, email: Optional[str], password: Optional[str]
) -> Optional[User]:
    """Validate credentials, registering unknown emails on the fly.

    Returns the user on success and ``None`` on any failure so the session
    layer can treat every failed attempt the same way.
    """
    if not email or not password:
        return None

    user = users.find_by_email(email)
    if user is None:
        try:
            return _create_user(users, email, password)
        except EmailAlreadyExistsError:
            # Lost an insert race against the same email; check against the winner.
            user = users.find_by_email(email)
            if user is None:
                return None

    if not verify_password(password, user.password_hash):
        return None
    return user


def _create_user(users: UserRepository, email: str, password: str) -> User:
    user = users.create_user(
        email=email,
        name=email.split("@")[0],
        password_hash=hash_password(password),
    )
    logger.info("Registered %s on first sign-in", email)
    return user


def enrich_token(users: UserRepository, token: dict) -> dict:
    """Copy roles and id from the stored user onto the session token.

    The user is resolved by the token's email. Unresolvable users get
    sentinel values; inactive users abort the token with InactiveUserError.
    """
    db_user = users.find_by_email(token.get("email") or NO_EMAIL)

    if db_user is not None and db_user.is_active is False:
        raise InactiveUserError(f"User {db_user.email} is not active")

    token["roles"] = db_user.role_names if db_user is not None else [NO_ROLES]
    token["id"] = db_user.id if db_user is not None else NO_UUID
    return token


def issue_token(
    users: UserRepository,
    *,
    email: str,
    name: Optional[str] = None,
    image: Optional[str] = None,
    subject: Optional[str] = None,
) -> dict:
    token = {"sub": subject, "email": email, "name": name, "picture": image}
    return enrich_token(users, token)


@dataclass(frozen=True)
class Anonymous:
    kind: str = field(default="anonymous", init=False)


@dataclass(frozen=True)
class Authenticated:
    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    roles: Tuple[str, ...] = ()
    kind: str = field(default="authenticated", init=False)

    @property
    def is_resolved(self) -> bool:
        return self.id != NO_UUID

    def has_role(self, role_name: str) -> bool:
        return self.is_resolved and role_name in self.roles

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "image": self.image,
            "roles": list(self.roles),
        }


SessionUser = Union[Anonymous, Authenticated]

ANONYMOUS = Anonymous()


def session_from_token(token: Optional[dict]) -> SessionUser:
    if not token or not token.get("email"):
        return ANONYMOUS
    return Authenticated(
        id=token.get("id") or NO_UUID,
        email=token["email"],
        name=token.get("name"),
        image=token.get("picture"),
        roles=tuple(token.get("roles", [NO_ROLES])),
    )
