"""User directory: accounts, credential hashes and display names."""

import logging
from typing import Optional

import bcrypt
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from .errors import ConflictError, InvalidInputError, UserNotFoundError
from .models import User
from .store import Store
from .tables import RedemptionRow, SessionRow, StarRow, UserRow, UserTranslation
from .translations import EntityKind, TranslationStore

logger = logging.getLogger(__name__)

# (username, is_admin)
DEFAULT_USERS = [
    ("dad", True),
    ("mom", True),
    ("theo", False),
    ("ray", False),
]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


class UserService:
    def __init__(self, store: Store, translations: Optional[TranslationStore] = None):
        self.store = store
        self.translations = translations or TranslationStore(store)

    def add_user(self, username: str, password: str, is_admin: bool = False, session: Optional[Session] = None) -> User:
        if not username or not password:
            raise InvalidInputError("username and password required")
        with self.store.session(session) as s:
            if s.scalar(select(UserRow.id).where(UserRow.username == username)) is not None:
                raise ConflictError(f"User {username} already exists")
            row = UserRow(username=username, password_hash=hash_password(password), is_admin=is_admin)
            s.add(row)
            s.flush()
            logger.info("Added user %s (admin=%s)", username, is_admin)
            return self._user(s, row)

    def get_user(self, user_id: int, session: Optional[Session] = None) -> User:
        with self.store.session(session) as s:
            row = s.get(UserRow, user_id)
            if row is None:
                raise UserNotFoundError(f"User {user_id} not found")
            return self._user(s, row)

    def get_user_by_username(self, username: str, session: Optional[Session] = None) -> User:
        with self.store.session(session) as s:
            row = s.scalar(select(UserRow).where(UserRow.username == username))
            if row is None:
                raise UserNotFoundError(f"user not found: {username}")
            return self._user(s, row)

    def list_users(self, session: Optional[Session] = None) -> list[User]:
        with self.store.session(session) as s:
            return [self._user(s, row) for row in s.scalars(select(UserRow).order_by(UserRow.id)).all()]

    def delete_user(self, user_id: int) -> None:
        """Remove a user together with their sessions, display names, redemptions and awards."""
        with self.store.session() as s:
            if s.get(UserRow, user_id) is None:
                raise UserNotFoundError(f"User {user_id} not found")
            s.execute(delete(SessionRow).where(SessionRow.user_id == user_id))
            s.execute(delete(UserTranslation).where(UserTranslation.user_id == user_id))
            s.execute(delete(RedemptionRow).where(RedemptionRow.user_id == user_id))
            s.execute(delete(StarRow).where(StarRow.user_id == user_id))
            s.execute(delete(UserRow).where(UserRow.id == user_id))
        logger.info("Deleted user %s", user_id)

    def set_password(self, user_id: int, password: str) -> None:
        if not password:
            raise InvalidInputError("password required")
        with self.store.session() as s:
            row = s.get(UserRow, user_id)
            if row is None:
                raise UserNotFoundError(f"User {user_id} not found")
            row.password_hash = hash_password(password)

    def verify_password(self, username: str, password: str) -> bool:
        with self.store.session() as s:
            stored = s.scalar(select(UserRow.password_hash).where(UserRow.username == username))
        if stored is None:
            return False
        return bcrypt.checkpw(password.encode("utf-8"), stored.encode("utf-8"))

    def set_display_name(self, user_id: int, lang: str, text: str, session: Optional[Session] = None) -> None:
        with self.store.session(session) as s:
            if s.get(UserRow, user_id) is None:
                raise UserNotFoundError(f"User {user_id} not found")
            self.translations.set_text(EntityKind.USER, user_id, lang, text, session=s)

    def display_name(self, user_id: int, lang: str, session: Optional[Session] = None) -> str:
        return self.translations.resolve(EntityKind.USER, user_id, lang, session=session)

    def seed_users(self, password: str) -> int:
        with self.store.session() as s:
            if s.scalar(select(func.count(UserRow.id))):
                return 0
            for username, is_admin in DEFAULT_USERS:
                self.add_user(username, password, is_admin, session=s)
        logger.info("Seeded default users: %s", ", ".join(name for name, _ in DEFAULT_USERS))
        return len(DEFAULT_USERS)

    def _user(self, s: Session, row: UserRow) -> User:
        return User(
            id=row.id,
            username=row.username,
            is_admin=row.is_admin,
            translations=self.translations.texts(EntityKind.USER, row.id, session=s),
        )
