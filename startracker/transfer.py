"""
Whole-store export and import for backup and restore.

Exports reference users, reasons and rewards by username/key rather than
by id, so a backup can be restored into a store with different ids.

Import replaces the catalog and both ledgers but never creates or alters
user accounts; only the display names of users that exist locally are
replaced. Two modes:

- BEST_EFFORT validates and inserts record by record. Malformed records and
  records pointing at unknown users or rewards are rejected and listed in
  the report while the rest goes in. Sections commit separately, so a
  crash halfway leaves a mixed store.
- ATOMIC validates the whole document and resolves every reference inside
  one transaction. Any problem raises ImportValidationError and nothing is
  changed.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import ConflictError, ImportValidationError, LedgerError, RewardNotFoundError, UserNotFoundError
from .models import (
    ExportDocument,
    ExportedReason,
    ExportedRedemption,
    ExportedReward,
    ExportedStar,
    ExportedUser,
    ImportMode,
    ImportReport,
    RejectedRecord,
)
from .store import Store
from .tables import ReasonRow, RedemptionRow, RewardRow, StarRow, UserRow
from .translations import EntityKind, TranslationStore

logger = logging.getLogger(__name__)

# Import order matters: ledgers resolve keys created by the catalog sections.
SECTIONS: list[tuple[str, type[BaseModel]]] = [
    ("reasons", ExportedReason),
    ("rewards", ExportedReward),
    ("users", ExportedUser),
    ("stars", ExportedStar),
    ("redemptions", ExportedRedemption),
]


class TransferService:
    def __init__(self, store: Store, translations: Optional[TranslationStore] = None):
        self.store = store
        self.translations = translations or TranslationStore(store)

    def export_all(self) -> ExportDocument:
        with self.store.session() as s:
            usernames = dict(s.execute(select(UserRow.id, UserRow.username)).all())
            reason_keys = dict(s.execute(select(ReasonRow.id, ReasonRow.key)).all())
            reward_keys = dict(s.execute(select(RewardRow.id, RewardRow.key)).all())

            users = [
                ExportedUser(
                    username=row.username,
                    is_admin=row.is_admin,
                    translations=self.translations.texts(EntityKind.USER, row.id, session=s),
                )
                for row in s.scalars(select(UserRow).order_by(UserRow.id)).all()
            ]
            reasons = [
                ExportedReason(
                    key=row.key,
                    stars=row.stars,
                    translations=self.translations.texts(EntityKind.REASON, row.id, session=s),
                )
                for row in s.scalars(select(ReasonRow).order_by(ReasonRow.id)).all()
            ]
            rewards = [
                ExportedReward(
                    key=row.key,
                    cost=row.cost,
                    icon=row.icon,
                    adult_only=row.adult_only,
                    translations=self.translations.texts(EntityKind.REWARD, row.id, session=s),
                )
                for row in s.scalars(select(RewardRow).order_by(RewardRow.id)).all()
            ]
            stars = [
                ExportedStar(
                    username=usernames[row.user_id],
                    reason_key=reason_keys.get(row.reason_id),
                    reason_text=self._reason_text(row, reason_keys),
                    stars=row.stars,
                    awarded_by=usernames.get(row.awarded_by),
                    created_at=row.created_at,
                )
                for row in s.scalars(select(StarRow).order_by(StarRow.created_at, StarRow.id)).all()
            ]
            redemptions = [
                ExportedRedemption(
                    username=usernames[row.user_id],
                    reward_key=reward_keys[row.reward_id],
                    cost=row.cost,
                    created_at=row.created_at,
                )
                for row in s.scalars(select(RedemptionRow).order_by(RedemptionRow.created_at, RedemptionRow.id)).all()
            ]
            settings = self.store.all_settings(session=s)

        return ExportDocument(
            exported_at=datetime.now(timezone.utc),
            users=users,
            reasons=reasons,
            rewards=rewards,
            stars=stars,
            redemptions=redemptions,
            settings=settings,
        )

    @staticmethod
    def _reason_text(row: StarRow, reason_keys: dict[int, str]) -> Optional[str]:
        # A dangling reason id cannot be exported by key; keep its display text instead.
        if row.reason_id and row.reason_id not in reason_keys:
            return row.reason_text or f"#{row.reason_id}"
        return row.reason_text

    def import_all(
        self, document: Union[ExportDocument, dict[str, Any]], mode: ImportMode = ImportMode.BEST_EFFORT
    ) -> ImportReport:
        if isinstance(document, ExportDocument):
            document = document.model_dump()
        if not isinstance(document, dict):
            raise ImportValidationError("import document must be a JSON object")

        if mode == ImportMode.ATOMIC:
            report = self._import_atomic(document)
        else:
            report = self._import_best_effort(document)
        logger.info(
            "Import finished (%s): imported=%s rejected=%d", mode.value, report.imported, len(report.rejected)
        )
        return report

    def _import_best_effort(self, document: dict[str, Any]) -> ImportReport:
        report = ImportReport(mode=ImportMode.BEST_EFFORT)
        with self.store.session() as s:
            self._clear(s)

        for section, schema in SECTIONS:
            records = document.get(section) or []
            if not isinstance(records, list):
                self._reject(report, section, -1, f"{section} must be a list")
                continue
            report.imported[section] = 0
            for index, raw in enumerate(records):
                try:
                    record = schema.model_validate(raw)
                    with self.store.session() as s:
                        self._insert(s, record)
                except (ValidationError, LedgerError, SQLAlchemyError) as e:
                    self._reject(report, section, index, str(e))
                    continue
                report.imported[section] += 1

        try:
            settings = ExportDocument.model_validate({"settings": document.get("settings") or {}}).settings
        except ValidationError as e:
            self._reject(report, "settings", -1, str(e))
        else:
            with self.store.session() as s:
                for key, value in settings.items():
                    self.store.set_setting(key, value, session=s)
            report.imported["settings"] = len(settings)
        return report

    def _import_atomic(self, document: dict[str, Any]) -> ImportReport:
        try:
            parsed = ExportDocument.model_validate(document)
        except ValidationError as e:
            problems = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            raise ImportValidationError("import document is malformed", problems) from e

        report = ImportReport(mode=ImportMode.ATOMIC)
        problems: list[str] = []
        with self.store.session() as s:
            self._clear(s)
            for section, _ in SECTIONS:
                report.imported[section] = 0
                for index, record in enumerate(getattr(parsed, section)):
                    try:
                        self._insert(s, record)
                    except LedgerError as e:
                        problems.append(f"{section}.{index}: {e}")
                        continue
                    report.imported[section] += 1
            if problems:
                # Raising inside the session rolls the whole import back.
                raise ImportValidationError("import rejected, store left unchanged", problems)
            for key, value in parsed.settings.items():
                self.store.set_setting(key, value, session=s)
            report.imported["settings"] = len(parsed.settings)
        return report

    def _clear(self, s: Session) -> None:
        s.execute(delete(RedemptionRow))
        s.execute(delete(StarRow))
        self.translations.clear(EntityKind.REASON, session=s)
        s.execute(delete(ReasonRow))
        self.translations.clear(EntityKind.REWARD, session=s)
        s.execute(delete(RewardRow))

    def _reject(self, report: ImportReport, section: str, index: int, error: str) -> None:
        logger.warning("Rejected %s record %d: %s", section, index, error)
        report.rejected.append(RejectedRecord(section=section, index=index, error=error))

    def _insert(self, s: Session, record: BaseModel) -> None:
        if isinstance(record, ExportedReason):
            self._insert_reason(s, record)
        elif isinstance(record, ExportedReward):
            self._insert_reward(s, record)
        elif isinstance(record, ExportedUser):
            self._insert_user_texts(s, record)
        elif isinstance(record, ExportedStar):
            self._insert_star(s, record)
        elif isinstance(record, ExportedRedemption):
            self._insert_redemption(s, record)

    def _insert_reason(self, s: Session, record: ExportedReason) -> None:
        if s.scalar(select(ReasonRow.id).where(ReasonRow.key == record.key)) is not None:
            raise ConflictError(f"duplicate reason key {record.key}")
        row = ReasonRow(key=record.key, stars=record.stars)
        s.add(row)
        s.flush()
        self.translations.replace_texts(EntityKind.REASON, row.id, record.translations, session=s)

    def _insert_reward(self, s: Session, record: ExportedReward) -> None:
        if s.scalar(select(RewardRow.id).where(RewardRow.key == record.key)) is not None:
            raise ConflictError(f"duplicate reward key {record.key}")
        row = RewardRow(key=record.key, cost=record.cost, icon=record.icon, adult_only=record.adult_only)
        s.add(row)
        s.flush()
        self.translations.replace_texts(EntityKind.REWARD, row.id, record.translations, session=s)

    def _insert_user_texts(self, s: Session, record: ExportedUser) -> None:
        user_id = self._user_id(s, record.username)
        self.translations.replace_texts(EntityKind.USER, user_id, record.translations, session=s)

    def _insert_star(self, s: Session, record: ExportedStar) -> None:
        reason_id = None
        if record.reason_key:
            reason_id = s.scalar(select(ReasonRow.id).where(ReasonRow.key == record.reason_key))
        awarded_by = None
        if record.awarded_by:
            awarded_by = s.scalar(select(UserRow.id).where(UserRow.username == record.awarded_by))
        row = StarRow(
            user_id=self._user_id(s, record.username),
            reason_id=reason_id,
            reason_text=record.reason_text,
            stars=record.stars,
            awarded_by=awarded_by,
        )
        if record.created_at is not None:
            row.created_at = record.created_at
        s.add(row)
        s.flush()

    def _insert_redemption(self, s: Session, record: ExportedRedemption) -> None:
        reward_id = s.scalar(select(RewardRow.id).where(RewardRow.key == record.reward_key))
        if reward_id is None:
            raise RewardNotFoundError(f"unknown reward key {record.reward_key}")
        row = RedemptionRow(user_id=self._user_id(s, record.username), reward_id=reward_id, cost=record.cost)
        if record.created_at is not None:
            row.created_at = record.created_at
        s.add(row)
        s.flush()

    def _user_id(self, s: Session, username: str) -> int:
        user_id = s.scalar(select(UserRow.id).where(UserRow.username == username))
        if user_id is None:
            raise UserNotFoundError(f"user not found: {username}")
        return user_id
