"""In-memory credential store.

Stands in for the persistent user repository. Lookups by username and email are
case-insensitive; stored usernames keep the casing they were registered with.
"""

import itertools
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Optional

from passlib.context import CryptContext

from .schemas import User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class DuplicateUserError(ValueError):
    pass


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _fold(value: str) -> str:
    return value.strip().casefold()


class CredentialStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._by_username: Dict[str, User] = {}
        self._by_email: Dict[str, User] = {}

    def register(self, username: str, email: str, password: str) -> User:
        username = username.strip()
        email = email.strip().lower()
        with self._lock:
            if _fold(email) in self._by_email:
                raise DuplicateUserError("Email is already registered")
            if _fold(username) in self._by_username:
                raise DuplicateUserError("Username is already taken")
            user = User(
                id=next(self._ids),
                username=username,
                email=email,
                password=get_password_hash(password),
                createdAt=datetime.now(timezone.utc),
            )
            self._by_username[_fold(username)] = user
            self._by_email[_fold(email)] = user
        logger.info("Registered new user '%s' (%s)", user.username, user.email)
        return user

    def find_by_username(self, username: Optional[str]) -> Optional[User]:
        if username is None:
            return None
        return self._by_username.get(_fold(username))

    def authenticate(self, username: str, password: str) -> Optional[User]:
        user = self.find_by_username(username)
        if user is None or not verify_password(password, user.password):
            return None
        return user
