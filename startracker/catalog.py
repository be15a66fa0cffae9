"""
Reason and reward catalog.

Reasons parameterize awards (their star value), rewards parameterize
redemptions (their cost). Both get a stable key from the first label they
were created with and carry translations for display.
"""

import logging
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from .config import FALLBACK_LANG
from .errors import ConflictError, InvalidInputError, ReasonNotFoundError, RewardNotFoundError
from .keys import unique_key
from .models import Reason, Reward
from .store import Store
from .tables import ReasonRow, ReasonTranslation, RedemptionRow, RewardRow, StarRow
from .translations import EntityKind, TranslationStore

logger = logging.getLogger(__name__)

DEFAULT_REWARDS = [
    ("Extra screen time", 5, "\U0001F4F1"),
    ("Choose dinner", 6, "\U0001F37D\uFE0F"),
    ("Stay up late", 7, "\U0001F319"),
    ("Ice cream outing", 8, "\U0001F366"),
    ("Movie time", 10, "\U0001F3AC"),
    ("Day trip choice", 15, "\U0001F697"),
]


def _clamp(value: int) -> int:
    return value if value >= 1 else 1


class CatalogService:
    def __init__(self, store: Store, translations: Optional[TranslationStore] = None):
        self.store = store
        self.translations = translations or TranslationStore(store)

    # Reasons

    def list_reasons(self, session: Optional[Session] = None) -> list[Reason]:
        count = func.count(StarRow.id).label("count")
        query = (
            select(ReasonRow, count)
            .outerjoin(StarRow, StarRow.reason_id == ReasonRow.id)
            .group_by(ReasonRow.id)
            .order_by(count.desc(), ReasonRow.id)
        )
        with self.store.session(session) as s:
            return [
                self._reason(s, row, n)
                for row, n in s.execute(query).all()
            ]

    def get_reason(self, reason_id: int, session: Optional[Session] = None) -> Reason:
        with self.store.session(session) as s:
            row = s.get(ReasonRow, reason_id)
            if row is None:
                raise ReasonNotFoundError(f"Reason {reason_id} not found")
            n = s.scalar(select(func.count(StarRow.id)).where(StarRow.reason_id == reason_id))
            return self._reason(s, row, n)

    def find_reason_by_text(self, text: str, session: Optional[Session] = None) -> Optional[Reason]:
        """Reason whose English text is exactly ``text`` (case-sensitive), if any."""
        with self.store.session(session) as s:
            reason_id = s.scalar(
                select(ReasonTranslation.reason_id)
                .where(ReasonTranslation.lang == FALLBACK_LANG, ReasonTranslation.text == text)
                .order_by(ReasonTranslation.reason_id)
                .limit(1)
            )
            if reason_id is None:
                return None
            return self.get_reason(reason_id, session=s)

    def create_reason(self, text: str, stars: int = 1, session: Optional[Session] = None) -> Reason:
        if not text or not text.strip():
            raise InvalidInputError("reason text required")
        with self.store.session(session) as s:
            row = ReasonRow(key=unique_key(s, ReasonRow.key, text), stars=_clamp(stars))
            s.add(row)
            s.flush()
            self.translations.set_text(EntityKind.REASON, row.id, FALLBACK_LANG, text, session=s)
            logger.info("Created reason %s (%s) worth %d", row.id, row.key, row.stars)
            return self._reason(s, row, 0)

    def set_reason_translation(self, reason_id: int, lang: str, text: str, session: Optional[Session] = None) -> None:
        with self.store.session(session) as s:
            self._reason_row(s, reason_id)
            self.translations.set_text(EntityKind.REASON, reason_id, lang, text, session=s)

    def set_reason_stars(
        self, reason_id: int, stars: int, retroactive: bool = False, session: Optional[Session] = None
    ) -> Reason:
        """
        Change a reason's star value.

        With ``retroactive`` every existing award for the reason is rewritten
        to the new value; otherwise only future awards pick it up.
        """
        stars = _clamp(stars)
        with self.store.session(session) as s:
            row = self._reason_row(s, reason_id)
            row.stars = stars
            if retroactive:
                result = s.execute(update(StarRow).where(StarRow.reason_id == reason_id).values(stars=stars))
                logger.info("Reason %s set to %d stars, rewrote %d awards", reason_id, stars, result.rowcount)
            else:
                logger.info("Reason %s set to %d stars for future awards", reason_id, stars)
            s.flush()
            return self.get_reason(reason_id, session=s)

    def delete_reason(self, reason_id: int, session: Optional[Session] = None) -> None:
        # Awards keep their dangling reason_id and fall back to their snapshot text.
        with self.store.session(session) as s:
            self._reason_row(s, reason_id)
            s.execute(delete(ReasonRow).where(ReasonRow.id == reason_id))
            logger.info("Deleted reason %s", reason_id)

    def reason_display(
        self, reason_id: Optional[int], reason_text: Optional[str], lang: str, session: Optional[Session] = None
    ) -> str:
        """Catalog text, then the award's own snapshot, then the bare id."""
        if reason_id:
            text = self.translations.resolve(EntityKind.REASON, reason_id, lang, session=session)
            if text:
                return text
        if reason_text:
            return reason_text
        return f"#{reason_id}" if reason_id else ""

    # Rewards

    def list_rewards(self, session: Optional[Session] = None) -> list[Reward]:
        with self.store.session(session) as s:
            rows = s.scalars(select(RewardRow).order_by(RewardRow.cost, RewardRow.id)).all()
            return [self._reward(s, row) for row in rows]

    def get_reward(self, reward_id: int, session: Optional[Session] = None) -> Reward:
        with self.store.session(session) as s:
            return self._reward(s, self._reward_row(s, reward_id))

    def create_reward(
        self, name: str, cost: int, icon: str = "", adult_only: bool = False, session: Optional[Session] = None
    ) -> Reward:
        if not name or not name.strip():
            raise InvalidInputError("reward name required")
        with self.store.session(session) as s:
            row = RewardRow(
                key=unique_key(s, RewardRow.key, name), cost=_clamp(cost), icon=icon or "", adult_only=adult_only
            )
            s.add(row)
            s.flush()
            self.translations.set_text(EntityKind.REWARD, row.id, FALLBACK_LANG, name, session=s)
            logger.info("Created reward %s (%s) costing %d", row.id, row.key, row.cost)
            return self._reward(s, row)

    def update_reward(
        self,
        reward_id: int,
        name: str,
        cost: int,
        icon: str = "",
        adult_only: Optional[bool] = None,
        session: Optional[Session] = None,
    ) -> Reward:
        """
        Edit a reward from the admin form in one transaction.

        Cost changes here never touch past redemptions. ``adult_only`` is
        left as it is when None.
        """
        if not name or not name.strip():
            raise InvalidInputError("reward name required")
        with self.store.session(session) as s:
            row = self._reward_row(s, reward_id)
            row.icon = icon or ""
            if adult_only is not None:
                row.adult_only = adult_only
            self.set_reward_cost(reward_id, cost, retroactive=False, session=s)
            self.translations.set_text(EntityKind.REWARD, reward_id, FALLBACK_LANG, name, session=s)
            return self._reward(s, row)

    def set_reward_translation(self, reward_id: int, lang: str, text: str, session: Optional[Session] = None) -> None:
        with self.store.session(session) as s:
            self._reward_row(s, reward_id)
            self.translations.set_text(EntityKind.REWARD, reward_id, lang, text, session=s)

    def set_reward_cost(
        self, reward_id: int, cost: int, retroactive: bool = False, session: Optional[Session] = None
    ) -> Reward:
        """
        Change a reward's price.

        Non-retroactive: redemptions still floating with the catalog price
        are pinned to the old price first, so their historical debit stays
        put. Retroactive: they keep floating and now debit the new price.
        """
        cost = _clamp(cost)
        with self.store.session(session) as s:
            row = self._reward_row(s, reward_id)
            if not retroactive:
                result = s.execute(
                    update(RedemptionRow)
                    .where(RedemptionRow.reward_id == reward_id, RedemptionRow.cost.is_(None))
                    .values(cost=row.cost)
                )
                if result.rowcount:
                    logger.info("Pinned %d redemptions of reward %s at %d", result.rowcount, reward_id, row.cost)
            logger.info("Reward %s cost %d -> %d (retroactive=%s)", reward_id, row.cost, cost, retroactive)
            row.cost = cost
            s.flush()
            return self._reward(s, row)

    def set_reward_adult_only(self, reward_id: int, adult_only: bool, session: Optional[Session] = None) -> Reward:
        with self.store.session(session) as s:
            row = self._reward_row(s, reward_id)
            row.adult_only = adult_only
            return self._reward(s, row)

    def delete_reward(self, reward_id: int, session: Optional[Session] = None) -> None:
        with self.store.session(session) as s:
            self._reward_row(s, reward_id)
            used = s.scalar(select(func.count(RedemptionRow.id)).where(RedemptionRow.reward_id == reward_id))
            if used:
                raise ConflictError(f"Reward {reward_id} has {used} redemptions and cannot be deleted")
            s.execute(delete(RewardRow).where(RewardRow.id == reward_id))
            logger.info("Deleted reward %s", reward_id)

    def reward_display(self, reward_id: int, lang: str, session: Optional[Session] = None) -> str:
        return self.translations.resolve(EntityKind.REWARD, reward_id, lang, session=session)

    def seed_rewards(self) -> int:
        with self.store.session() as s:
            if s.scalar(select(func.count(RewardRow.id))):
                return 0
            for name, cost, icon in DEFAULT_REWARDS:
                self.create_reward(name, cost, icon, session=s)
        logger.info("Seeded %d default rewards", len(DEFAULT_REWARDS))
        return len(DEFAULT_REWARDS)

    def _reason_row(self, s: Session, reason_id: int) -> ReasonRow:
        row = s.get(ReasonRow, reason_id)
        if row is None:
            raise ReasonNotFoundError(f"Reason {reason_id} not found")
        return row

    def _reward_row(self, s: Session, reward_id: int) -> RewardRow:
        row = s.get(RewardRow, reward_id)
        if row is None:
            raise RewardNotFoundError(f"Reward {reward_id} not found")
        return row

    def _reason(self, s: Session, row: ReasonRow, count: int) -> Reason:
        return Reason(
            id=row.id,
            key=row.key,
            stars=row.stars,
            created_at=row.created_at,
            translations=self.translations.texts(EntityKind.REASON, row.id, session=s),
            count=count or 0,
        )

    def _reward(self, s: Session, row: RewardRow) -> Reward:
        return Reward(
            id=row.id,
            key=row.key,
            cost=row.cost,
            icon=row.icon,
            adult_only=row.adult_only,
            created_at=row.created_at,
            translations=self.translations.texts(EntityKind.REWARD, row.id, session=s),
        )
