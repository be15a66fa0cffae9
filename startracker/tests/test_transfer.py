import pytest

from startracker.errors import ImportValidationError
from startracker.models import ImportMode


@pytest.fixture
def populated(services, family, floating_redemption):
    """A store with translated catalog entries and both ledgers filled."""
    reason = services.catalog.create_reason("Helped with dishes", 2)
    services.catalog.set_reason_translation(reason.id, "fr", "Vaisselle")
    reward = services.catalog.create_reward("Movie time", 4, "\U0001F3AC")
    services.catalog.set_reward_translation(reward.id, "zh-TW", "看電影")
    services.users.set_display_name(family["theo"].id, "en", "Theo")

    services.ledger.record_award("theo", reason_id=reason.id, awarded_by=family["dad"].id)
    services.ledger.record_award("theo", reason_text="Fed the cat", stars=5)
    services.ledger.record_award("ray", reason_id=reason.id)
    services.ledger.redeem("theo", reward.id)
    floating_redemption(family["ray"].id, reward.id)
    services.store.set_setting("theme", "dark")
    return services


def snapshot(services):
    return {
        "reasons": sorted((r.key, r.stars, tuple(sorted(r.translations.items()))) for r in services.catalog.list_reasons()),
        "rewards": sorted((r.key, r.cost, tuple(sorted(r.translations.items()))) for r in services.catalog.list_rewards()),
        "balances": {b.username: (b.star_count, b.current_stars) for b in services.ledger.user_balances()},
        "names": {u.username: u.translations for u in services.users.list_users()},
    }


class TestExport:
    """Tests for building the export document."""

    def test_records_reference_keys(self, populated):
        """Test records reference keys."""
        document = populated.transfer.export_all()

        assert {r.key for r in document.reasons} == {"Helped_with_dishes", "Fed_the_cat"}
        assert document.rewards[0].translations == {"en": "Movie time", "zh-TW": "看電影"}
        star = next(s for s in document.stars if s.awarded_by)
        assert (star.username, star.reason_key, star.awarded_by) == ("theo", "Helped_with_dishes", "dad")
        assert sorted(r.cost for r in document.redemptions if r.cost is not None) == [4]
        assert [r.cost for r in document.redemptions if r.username == "ray"] == [None]
        assert document.settings == {"theme": "dark"}

    def test_every_record_is_tagged(self, populated):
        """Test every record is tagged."""
        document = populated.transfer.export_all().model_dump(mode="json")

        assert {u["kind"] for u in document["users"]} == {"user"}
        assert {s["kind"] for s in document["stars"]} == {"star"}
        assert {r["kind"] for r in document["redemptions"]} == {"redemption"}


class TestBestEffortImport:
    """Tests for record-by-record import."""

    def test_round_trip_preserves_totals(self, populated):
        """Test round trip preserves totals."""
        before = snapshot(populated)
        document = populated.transfer.export_all().model_dump(mode="json")

        report = populated.transfer.import_all(document)

        assert report.ok
        assert report.imported["stars"] == 3
        assert snapshot(populated) == before
        assert populated.store.get_setting("theme") == "dark"

    def test_bad_records_are_rejected_and_reported(self, populated):
        """Test bad records are rejected and reported."""
        document = populated.transfer.export_all().model_dump(mode="json")
        document["stars"].append({"kind": "star", "username": "ghost", "stars": 1})
        document["stars"].append({"kind": "star", "username": "theo"})
        document["rewards"].append({"kind": "reward", "key": "free", "cost": 0})
        document["redemptions"].append({"kind": "redemption", "username": "theo", "reward_key": "nope"})

        report = populated.transfer.import_all(document)

        assert not report.ok
        assert sorted((r.section, r.index) for r in report.rejected) == [
            ("redemptions", 2),
            ("rewards", 1),
            ("stars", 3),
            ("stars", 4),
        ]
        assert report.imported["stars"] == 3
        assert report.imported["redemptions"] == 2

    def test_unknown_users_keep_no_texts(self, services, family):
        """Test unknown users keep no texts."""
        report = services.transfer.import_all(
            {"users": [{"kind": "user", "username": "stranger", "translations": {"en": "Stranger"}}]}
        )

        assert [(r.section, r.index) for r in report.rejected] == [("users", 0)]
        assert [u.username for u in services.users.list_users()] == ["dad", "theo", "ray"]

    def test_non_list_section(self, services, family):
        """Test non list section."""
        report = services.transfer.import_all({"stars": "not a list"})

        assert [(r.section, r.index) for r in report.rejected] == [("stars", -1)]


class TestAtomicImport:
    """Tests for all-or-nothing import."""

    def test_valid_document_imports(self, populated):
        """Test valid document imports."""
        before = snapshot(populated)
        document = populated.transfer.export_all()

        report = populated.transfer.import_all(document, ImportMode.ATOMIC)

        assert report.ok
        assert report.mode == ImportMode.ATOMIC
        assert snapshot(populated) == before

    def test_unresolved_reference_rolls_back(self, populated):
        """Test unresolved reference rolls back."""
        before = snapshot(populated)
        document = populated.transfer.export_all().model_dump(mode="json")
        document["stars"].append({"kind": "star", "username": "ghost", "stars": 1})

        with pytest.raises(ImportValidationError) as exc_info:
            populated.transfer.import_all(document, ImportMode.ATOMIC)

        assert exc_info.value.problems == ["stars.3: user not found: ghost"]
        assert snapshot(populated) == before

    def test_malformed_document_rolls_back(self, populated):
        """Test malformed document rolls back."""
        before = snapshot(populated)
        document = populated.transfer.export_all().model_dump(mode="json")
        document["rewards"][0]["cost"] = "lots"

        with pytest.raises(ImportValidationError) as exc_info:
            populated.transfer.import_all(document, ImportMode.ATOMIC)

        assert exc_info.value.problems
        assert snapshot(populated) == before

    def test_wrong_kind_tag_is_malformed(self, services):
        """Test wrong kind tag is malformed."""
        with pytest.raises(ImportValidationError):
            services.transfer.import_all({"stars": [{"kind": "reward", "username": "theo", "stars": 1}]}, ImportMode.ATOMIC)


class TestDanglingReferences:
    """Tests for awards whose reason was deleted before export."""

    def test_dangling_reason_keeps_display_text(self, services, family):
        """Test a dangling reason survives export and import as its display text."""
        reason = services.catalog.create_reason("Dishes")
        services.ledger.record_award("theo", reason_id=reason.id)
        services.catalog.delete_reason(reason.id)
        document = services.transfer.export_all()

        assert document.stars[0].reason_key is None
        assert document.stars[0].reason_text == f"#{reason.id}"

        services.transfer.import_all(document)

        assert services.ledger.list_awards()[0].reason == f"#{reason.id}"
