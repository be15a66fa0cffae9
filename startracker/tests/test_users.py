import pytest

from startracker.errors import ConflictError, InvalidInputError, UserNotFoundError
from startracker.users import DEFAULT_USERS


class TestUserDirectory:
    """Tests for accounts and display names."""

    def test_add_and_lookup(self, services):
        """Test add and lookup."""
        user = services.users.add_user("theo", "secret")

        assert services.users.get_user_by_username("theo").id == user.id
        assert user.is_admin is False

    def test_duplicate_username(self, services, family):
        """Test duplicate username."""
        with pytest.raises(ConflictError):
            services.users.add_user("theo", "other")

    def test_credentials_required(self, services):
        """Test credentials required."""
        with pytest.raises(InvalidInputError):
            services.users.add_user("theo", "")

    def test_password_is_hashed_and_verified(self, services, family):
        """Test password is hashed and verified."""
        assert services.users.verify_password("theo", "secret")
        assert not services.users.verify_password("theo", "wrong")
        assert not services.users.verify_password("nobody", "secret")

        services.users.set_password(family["theo"].id, "new-secret")

        assert services.users.verify_password("theo", "new-secret")

    def test_display_name_fallback(self, services, family):
        """Test display name fallback."""
        theo = family["theo"]
        services.users.set_display_name(theo.id, "zh-CN", "小泰")

        assert services.users.display_name(theo.id, "zh-CN") == "小泰"
        assert services.users.display_name(theo.id, "fr") == "theo"

    def test_unknown_user(self, services):
        """Test awarding an unknown user fails."""
        with pytest.raises(UserNotFoundError):
            services.users.get_user(42)
        with pytest.raises(UserNotFoundError):
            services.users.set_display_name(42, "en", "Ghost")

    def test_delete_user_removes_their_ledgers(self, services, family):
        """Test delete user removes their ledgers."""
        reward = services.catalog.create_reward("Sticker", 1)
        services.ledger.record_award("theo", reason_text="Tidy room", awarded_by=family["dad"].id)
        services.ledger.redeem("theo", reward.id)
        services.ledger.record_award("ray", reason_text="Tidy room", awarded_by=family["dad"].id)

        services.users.delete_user(family["theo"].id)

        assert [s.username for s in services.ledger.list_awards()] == ["ray"]
        assert services.ledger.list_redemptions() == []

    def test_deleted_awarder_leaves_award(self, services, family):
        """Test deleted awarder leaves award."""
        star = services.ledger.record_award("ray", reason_text="Tidy room", awarded_by=family["dad"].id)

        services.users.delete_user(family["dad"].id)

        assert services.ledger.get_award(star.id).awarded_by is None

    def test_seed_users_once(self, services):
        """Test seed users once."""
        assert services.users.seed_users("changeme") == len(DEFAULT_USERS)
        assert services.users.seed_users("changeme") == 0
        assert [u.username for u in services.users.list_users()] == [name for name, _ in DEFAULT_USERS]
