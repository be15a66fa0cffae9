import logging
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from .catalog import CatalogService
from .config import FALLBACK_LANG
from .errors import (
    AwardNotFoundError,
    InsufficientBalanceError,
    ReasonNotFoundError,
    ReasonRequiredError,
    RedemptionNotFoundError,
    RewardNotFoundError,
    UserNotFoundError,
)
from .models import Redemption, Star, UserBalance
from .store import Store
from .tables import ReasonRow, RedemptionRow, RewardRow, StarRow, UserRow
from .translations import EntityKind, TranslationStore

logger = logging.getLogger(__name__)


def effective_cost_expr():
    """Snapshotted cost if the redemption has one, else the reward's current cost."""
    return func.coalesce(RedemptionRow.cost, RewardRow.cost)


class LedgerService:
    """
    Award (credit) and redemption (debit) ledgers.

    Balances are never stored; every read sums both ledgers afresh. The
    redemption balance check and the find-or-create reason path are
    check-then-act sequences with no lock around them.
    """

    def __init__(
        self,
        store: Optional[Store] = None,
        catalog: Optional[CatalogService] = None,
        translations: Optional[TranslationStore] = None,
    ):
        if store is None:
            store = Store()
            store.create_schema()
        self.store = store
        self.translations = translations or TranslationStore(store)
        self.catalog = catalog or CatalogService(store, self.translations)

    # Balances

    def current_balance(self, user_id: int, session: Optional[Session] = None) -> int:
        earned = select(func.coalesce(func.sum(StarRow.stars), 0)).where(StarRow.user_id == user_id)
        spent = (
            select(func.coalesce(func.sum(effective_cost_expr()), 0))
            .select_from(RedemptionRow)
            .join(RewardRow, RedemptionRow.reward_id == RewardRow.id)
            .where(RedemptionRow.user_id == user_id)
        )
        with self.store.session(session) as s:
            return int(s.scalar(earned)) - int(s.scalar(spent))

    def get_balance(self, user_id: int, lang: str = FALLBACK_LANG) -> UserBalance:
        with self.store.session() as s:
            user = s.get(UserRow, user_id)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found")
            earned = s.scalar(select(func.coalesce(func.sum(StarRow.stars), 0)).where(StarRow.user_id == user_id))
            return UserBalance(
                user_id=user.id,
                username=user.username,
                display_name=self.translations.resolve(EntityKind.USER, user.id, lang, session=s),
                is_admin=user.is_admin,
                star_count=int(earned),
                current_stars=self.current_balance(user.id, session=s),
            )

    def user_balances(self, lang: str = FALLBACK_LANG) -> list[UserBalance]:
        """All users with stars earned and current balance, most stars earned first."""
        earned = func.coalesce(func.sum(StarRow.stars), 0).label("earned")
        query = (
            select(UserRow, earned)
            .outerjoin(StarRow, StarRow.user_id == UserRow.id)
            .group_by(UserRow.id)
            .order_by(earned.desc(), UserRow.id)
        )
        with self.store.session() as s:
            return [
                UserBalance(
                    user_id=user.id,
                    username=user.username,
                    display_name=self.translations.resolve(EntityKind.USER, user.id, lang, session=s),
                    is_admin=user.is_admin,
                    star_count=int(total),
                    current_stars=self.current_balance(user.id, session=s),
                )
                for user, total in s.execute(query).all()
            ]

    def user_reason_counts(self) -> dict[int, dict[int, int]]:
        query = (
            select(StarRow.user_id, StarRow.reason_id, func.count())
            .where(StarRow.reason_id.is_not(None))
            .group_by(StarRow.user_id, StarRow.reason_id)
        )
        counts: dict[int, dict[int, int]] = {}
        with self.store.session() as s:
            for user_id, reason_id, n in s.execute(query):
                counts.setdefault(user_id, {})[reason_id] = n
        return counts

    # Awards

    def record_award(
        self,
        username: str,
        reason_id: Optional[int] = None,
        reason_text: Optional[str] = None,
        stars: Optional[int] = None,
        awarded_by: Optional[int] = None,
        lang: str = FALLBACK_LANG,
    ) -> Star:
        """
        Credit stars to ``username``.

        With a reason id the award is worth the reason's star value unless a
        positive ``stars`` override is given. With free text an existing
        reason whose English text matches exactly is reused, otherwise a new
        reason is created from the text; free-text awards are worth the
        override or 1.
        """
        override = stars if stars is not None and stars > 0 else None
        text = reason_text if reason_text and reason_text.strip() else None

        with self.store.session() as s:
            user_id = s.scalar(select(UserRow.id).where(UserRow.username == username))
            if user_id is None:
                raise UserNotFoundError(f"user not found: {username}")

            if reason_id is not None and reason_id > 0:
                reason = s.get(ReasonRow, reason_id)
                if reason is None:
                    raise ReasonNotFoundError(f"Reason {reason_id} not found")
                amount = override or (reason.stars if reason.stars > 0 else 1)
            elif text is not None:
                amount = override or 1
                existing = self.catalog.find_reason_by_text(text, session=s)
                if existing is not None:
                    reason_id = existing.id
                else:
                    reason_id = self.catalog.create_reason(text, amount, session=s).id
            else:
                raise ReasonRequiredError("reason required")

            row = StarRow(
                user_id=user_id,
                reason_id=reason_id,
                reason_text=text,
                stars=amount,
                awarded_by=awarded_by,
            )
            s.add(row)
            s.flush()
            logger.info("Awarded %d stars to %s for reason %s (by %s)", amount, username, reason_id, awarded_by)
            return self._star(s, row, lang)

    def get_award(self, star_id: int, lang: str = FALLBACK_LANG) -> Star:
        with self.store.session() as s:
            row = s.get(StarRow, star_id)
            if row is None:
                raise AwardNotFoundError(f"Award {star_id} not found")
            return self._star(s, row, lang)

    def list_awards(self, filter_username: Optional[str] = None, lang: str = FALLBACK_LANG) -> list[Star]:
        query = select(StarRow).join(UserRow, StarRow.user_id == UserRow.id)
        if filter_username:
            query = query.where(UserRow.username == filter_username)
        query = query.order_by(StarRow.created_at.desc(), StarRow.id.desc())
        with self.store.session() as s:
            return [self._star(s, row, lang) for row in s.scalars(query).all()]

    def delete_award(self, star_id: int) -> None:
        with self.store.session() as s:
            if s.get(StarRow, star_id) is None:
                raise AwardNotFoundError(f"Award {star_id} not found")
            s.execute(delete(StarRow).where(StarRow.id == star_id))
        logger.info("Deleted award %s", star_id)

    # Redemptions

    def record_redemption(self, username: str, reward_id: int, lang: str = FALLBACK_LANG) -> Redemption:
        """
        Debit a reward at its current cost.

        The cost is snapshotted onto the redemption. Callers check the
        balance first (see ``redeem``).
        """
        with self.store.session() as s:
            user_id = s.scalar(select(UserRow.id).where(UserRow.username == username))
            if user_id is None:
                raise UserNotFoundError(f"user not found: {username}")
            reward = s.get(RewardRow, reward_id)
            if reward is None:
                raise RewardNotFoundError(f"Reward {reward_id} not found")
            row = RedemptionRow(user_id=user_id, reward_id=reward.id, cost=reward.cost)
            s.add(row)
            s.flush()
            logger.info("%s redeemed reward %s for %d stars", username, reward.key, reward.cost)
            return self._redemption(s, row, lang)

    def redeem(self, username: str, reward_id: int, lang: str = FALLBACK_LANG) -> Redemption:
        """Check the balance covers the reward, then record the redemption."""
        with self.store.session() as s:
            user_id = s.scalar(select(UserRow.id).where(UserRow.username == username))
            if user_id is None:
                raise UserNotFoundError(f"user not found: {username}")
            cost = s.scalar(select(RewardRow.cost).where(RewardRow.id == reward_id))
            if cost is None:
                raise RewardNotFoundError(f"Reward {reward_id} not found")
            balance = self.current_balance(user_id, session=s)
        if balance < cost:
            raise InsufficientBalanceError(username, balance, cost)
        return self.record_redemption(username, reward_id, lang)

    def get_redemption(self, redemption_id: int, lang: str = FALLBACK_LANG) -> Redemption:
        with self.store.session() as s:
            row = s.get(RedemptionRow, redemption_id)
            if row is None:
                raise RedemptionNotFoundError(f"Redemption {redemption_id} not found")
            return self._redemption(s, row, lang)

    def list_redemptions(
        self, limit: int = 50, filter_user_id: Optional[int] = None, lang: str = FALLBACK_LANG
    ) -> list[Redemption]:
        query = select(RedemptionRow)
        if filter_user_id:
            query = query.where(RedemptionRow.user_id == filter_user_id)
        query = query.order_by(RedemptionRow.created_at.desc(), RedemptionRow.id.desc()).limit(limit)
        with self.store.session() as s:
            return [self._redemption(s, row, lang) for row in s.scalars(query).all()]

    def delete_redemption(self, redemption_id: int) -> None:
        with self.store.session() as s:
            if s.get(RedemptionRow, redemption_id) is None:
                raise RedemptionNotFoundError(f"Redemption {redemption_id} not found")
            s.execute(delete(RedemptionRow).where(RedemptionRow.id == redemption_id))
        logger.info("Deleted redemption %s", redemption_id)

    def _star(self, s: Session, row: StarRow, lang: str) -> Star:
        username = s.scalar(select(UserRow.username).where(UserRow.id == row.user_id)) or ""
        awarded_by_name = ""
        awarded_by_display = ""
        if row.awarded_by:
            awarded_by_name = s.scalar(select(UserRow.username).where(UserRow.id == row.awarded_by)) or ""
            awarded_by_display = self.translations.resolve(EntityKind.USER, row.awarded_by, lang, session=s)
        return Star(
            id=row.id,
            user_id=row.user_id,
            username=username,
            display_name=self.translations.resolve(EntityKind.USER, row.user_id, lang, session=s),
            reason_id=row.reason_id,
            reason_text=row.reason_text,
            reason=self.catalog.reason_display(row.reason_id, row.reason_text, lang, session=s),
            stars=row.stars,
            awarded_by=row.awarded_by,
            awarded_by_name=awarded_by_name,
            awarded_by_display=awarded_by_display,
            created_at=row.created_at,
        )

    def _redemption(self, s: Session, row: RedemptionRow, lang: str) -> Redemption:
        reward = s.get(RewardRow, row.reward_id)
        return Redemption(
            id=row.id,
            user_id=row.user_id,
            username=s.scalar(select(UserRow.username).where(UserRow.id == row.user_id)) or "",
            display_name=self.translations.resolve(EntityKind.USER, row.user_id, lang, session=s),
            reward_id=row.reward_id,
            reward_key=reward.key,
            reward_name=self.catalog.reward_display(row.reward_id, lang, session=s),
            cost=row.cost,
            effective_cost=row.cost if row.cost is not None else reward.cost,
            created_at=row.created_at,
        )
