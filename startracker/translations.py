"""
Per-entity display text.

Users, reasons and rewards each carry a language -> text mapping. Lookups
go requested language -> English -> an entity-specific fallback and never
raise.
"""

from enum import Enum
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .config import FALLBACK_LANG
from .errors import InvalidInputError
from .store import Store
from .tables import ReasonTranslation, RewardTranslation, UserRow, UserTranslation


class EntityKind(str, Enum):
    USER = "user"
    REASON = "reason"
    REWARD = "reward"


_TABLES = {
    EntityKind.USER: (UserTranslation, UserTranslation.user_id),
    EntityKind.REASON: (ReasonTranslation, ReasonTranslation.reason_id),
    EntityKind.REWARD: (RewardTranslation, RewardTranslation.reward_id),
}


class TranslationStore:
    def __init__(self, store: Store):
        self.store = store

    def set_text(
        self, kind: EntityKind, entity_id: int, lang: str, text: str, session: Optional[Session] = None
    ) -> None:
        if not lang:
            raise InvalidInputError("lang required")
        table, owner = _TABLES[kind]
        with self.store.session(session) as s:
            row = s.scalar(select(table).where(owner == entity_id, table.lang == lang))
            if row is None:
                row = table(lang=lang, text=text)
                setattr(row, owner.key, entity_id)
                s.add(row)
            else:
                row.text = text

    def texts(self, kind: EntityKind, entity_id: int, session: Optional[Session] = None) -> dict[str, str]:
        table, owner = _TABLES[kind]
        with self.store.session(session) as s:
            rows = s.execute(select(table.lang, table.text).where(owner == entity_id).order_by(table.lang))
            return {lang: text for lang, text in rows}

    def replace_texts(
        self, kind: EntityKind, entity_id: int, texts: dict[str, str], session: Optional[Session] = None
    ) -> None:
        table, owner = _TABLES[kind]
        with self.store.session(session) as s:
            s.execute(delete(table).where(owner == entity_id))
            for lang, text in texts.items():
                row = table(lang=lang, text=text)
                setattr(row, owner.key, entity_id)
                s.add(row)
            s.flush()

    def clear(self, kind: EntityKind, session: Optional[Session] = None) -> None:
        table, _ = _TABLES[kind]
        with self.store.session(session) as s:
            s.execute(delete(table))

    def lookup(self, kind: EntityKind, entity_id: int, lang: str, session: Optional[Session] = None) -> str:
        """Requested language, then English; empty string when neither has text."""
        table, owner = _TABLES[kind]
        with self.store.session(session) as s:
            for candidate in (lang, FALLBACK_LANG):
                text = s.scalar(select(table.text).where(owner == entity_id, table.lang == candidate))
                if text:
                    return text
        return ""

    def resolve(self, kind: EntityKind, entity_id: int, lang: str, session: Optional[Session] = None) -> str:
        with self.store.session(session) as s:
            text = self.lookup(kind, entity_id, lang, session=s)
            if text or kind != EntityKind.USER:
                return text
            return s.scalar(select(UserRow.username).where(UserRow.id == entity_id)) or ""
