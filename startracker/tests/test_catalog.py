import pytest

from startracker.catalog import DEFAULT_REWARDS
from startracker.errors import ConflictError, InvalidInputError, ReasonNotFoundError, RewardNotFoundError


class TestReasons:
    """Tests for the reason catalog."""

    def test_create_reason_derives_key(self, services):
        """Test create reason derives key."""
        reason = services.catalog.create_reason("Helped with dishes", 2)

        assert reason.key == "Helped_with_dishes"
        assert reason.stars == 2
        assert reason.translations == {"en": "Helped with dishes"}
        assert reason.count == 0

    def test_colliding_keys_get_suffixes(self, services):
        """Test colliding keys get suffixes."""
        first = services.catalog.create_reason("帮忙")
        second = services.catalog.create_reason("整理")
        third = services.catalog.create_reason("custom")

        assert [first.key, second.key, third.key] == ["custom", "custom_2", "custom_3"]

    def test_star_value_is_clamped(self, services):
        """Test star value is clamped."""
        assert services.catalog.create_reason("Nothing", 0).stars == 1

    def test_blank_text_rejected(self, services):
        """Test blank text rejected."""
        with pytest.raises(InvalidInputError):
            services.catalog.create_reason("   ")

    def test_find_by_text_is_exact(self, services):
        """Test find by text is exact."""
        reason = services.catalog.create_reason("Helped with dishes")

        assert services.catalog.find_reason_by_text("Helped with dishes").id == reason.id
        assert services.catalog.find_reason_by_text("helped with dishes") is None

    def test_list_reasons_by_usage(self, services, family):
        """Test list reasons by usage."""
        rare = services.catalog.create_reason("Rare")
        common = services.catalog.create_reason("Common")
        services.ledger.record_award("theo", reason_id=common.id)
        services.ledger.record_award("ray", reason_id=common.id)
        services.ledger.record_award("ray", reason_id=rare.id)
        services.ledger.record_award("ray", reason_id=common.id)

        reasons = services.catalog.list_reasons()

        assert [(r.id, r.count) for r in reasons] == [(common.id, 3), (rare.id, 1)]

    def test_unknown_reason(self, services):
        """Test unknown reason ids raise ReasonNotFoundError."""
        with pytest.raises(ReasonNotFoundError):
            services.catalog.get_reason(42)
        with pytest.raises(ReasonNotFoundError):
            services.catalog.set_reason_stars(42, 3)

    def test_translation_requires_reason(self, services):
        """Test translation requires reason."""
        with pytest.raises(ReasonNotFoundError):
            services.catalog.set_reason_translation(42, "fr", "Vaisselle")

    def test_reason_display_fallbacks(self, services):
        """Test reason display fallbacks."""
        reason = services.catalog.create_reason("Dishes")
        services.catalog.set_reason_translation(reason.id, "fr", "Vaisselle")

        assert services.catalog.reason_display(reason.id, None, "fr") == "Vaisselle"
        assert services.catalog.reason_display(reason.id, None, "de") == "Dishes"
        assert services.catalog.reason_display(999, "Old text", "de") == "Old text"
        assert services.catalog.reason_display(999, None, "de") == "#999"
        assert services.catalog.reason_display(None, None, "de") == ""


class TestRewards:
    """Tests for the reward catalog."""

    def test_create_reward(self, services):
        """Test successful reward creation."""
        reward = services.catalog.create_reward("Movie time", 10, "\U0001F3AC")

        assert reward.key == "Movie_time"
        assert reward.name == "Movie time"
        assert reward.cost == 10
        assert reward.adult_only is False

    def test_list_rewards_cheapest_first(self, services):
        """Test list rewards cheapest first."""
        services.catalog.create_reward("Movie", 10)
        services.catalog.create_reward("Sticker", 1)
        services.catalog.create_reward("Ice cream", 8)

        assert [r.cost for r in services.catalog.list_rewards()] == [1, 8, 10]

    def test_update_reward(self, services):
        """Test update reward."""
        reward = services.catalog.create_reward("Movie", 10)

        updated = services.catalog.update_reward(reward.id, "Movie night", 12, "\U0001F37F")

        assert updated.name == "Movie night"
        assert updated.cost == 12
        assert updated.icon == "\U0001F37F"
        assert updated.key == "Movie"

    def test_update_reward_sets_adult_only(self, services):
        """Test update reward sets adult only."""
        reward = services.catalog.create_reward("Coffee", 3)

        updated = services.catalog.update_reward(reward.id, "Coffee", 3, adult_only=True)
        kept = services.catalog.update_reward(reward.id, "Espresso", 4)

        assert updated.adult_only is True
        assert kept.adult_only is True

    def test_update_reward_is_one_transaction(self, services, monkeypatch):
        """Test a failed reward edit leaves every field unchanged."""
        reward = services.catalog.create_reward("Coffee", 3, "☕")

        def fail(*args, **kwargs):
            raise RuntimeError("write failed")

        monkeypatch.setattr(services.catalog.translations, "set_text", fail)
        with pytest.raises(RuntimeError):
            services.catalog.update_reward(reward.id, "Espresso", 5, "", adult_only=True)

        unchanged = services.catalog.get_reward(reward.id)
        assert (unchanged.cost, unchanged.icon, unchanged.adult_only) == (3, "☕", False)

    def test_deleted_reward_id_is_not_reused(self, services):
        """Test a new reward never takes a deleted reward's id."""
        old = services.catalog.create_reward("Sticker", 1)
        services.catalog.delete_reward(old.id)

        assert services.catalog.create_reward("Badge", 1).id != old.id

    def test_adult_only_flag(self, services):
        """Test adult only flag."""
        reward = services.catalog.create_reward("Coffee", 3)

        assert services.catalog.set_reward_adult_only(reward.id, True).adult_only is True

    def test_delete_unused_reward(self, services):
        """Test delete unused reward."""
        reward = services.catalog.create_reward("Sticker", 1)
        services.catalog.delete_reward(reward.id)

        with pytest.raises(RewardNotFoundError):
            services.catalog.get_reward(reward.id)

    def test_delete_redeemed_reward_refused(self, services, family):
        """Test delete redeemed reward refused."""
        reward = services.catalog.create_reward("Sticker", 1)
        services.ledger.record_award("theo", reason_text="Tidy room")
        services.ledger.redeem("theo", reward.id)

        with pytest.raises(ConflictError):
            services.catalog.delete_reward(reward.id)

    def test_seed_rewards_once(self, services):
        """Test seed rewards once."""
        assert services.catalog.seed_rewards() == len(DEFAULT_REWARDS)
        assert services.catalog.seed_rewards() == 0
        assert len(services.catalog.list_rewards()) == len(DEFAULT_REWARDS)
