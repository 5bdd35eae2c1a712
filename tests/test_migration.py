"""Unit tests for LayoutMigrator: layout migration, rollback, remapping, property upgrade."""

from __future__ import annotations

import pytest

from src.estateflow.customers.migration import (
    STAGE_REMAP,
    LayoutMigrator,
    is_migrated,
    upgrade_legacy_property,
)
from src.estateflow.customers.schemas import (
    ChecklistItem,
    Customer,
    CustomerUpdate,
    Meeting,
    Property,
)
from src.estateflow.customers.sync import SyncCoordinator


def _make_customer(customer_id: str, created_at: int, **overrides) -> Customer:
    defaults = {
        "id": customer_id,
        "name": f"Customer {customer_id}",
        "created_at": created_at,
        "checklists": [ChecklistItem(id=f"{customer_id}-k1", text="Call", created_at=1)],
        "meetings": [
            Meeting(
                id=f"{customer_id}-m1",
                round=1,
                created_at=10,
                properties=[Property(id=f"{customer_id}-p1", raw_input="Apt 1", photos=["https://cdn/1.jpg"])],
            ),
            Meeting(id=f"{customer_id}-m2", round=2, created_at=20),
        ],
    }
    defaults.update(overrides)
    return Customer(**defaults)


@pytest.fixture
async def legacy_customers(tree_repo):
    """Three customers in the hierarchical layout, one with no nested records."""
    await tree_repo.create_customer(_make_customer("a", 1))
    await tree_repo.create_customer(_make_customer("b", 2))
    await tree_repo.create_customer(_make_customer("empty", 3, checklists=[], meetings=[]))
    return ["a", "b", "empty"]


@pytest.fixture
def migrator(flat_repo):
    return LayoutMigrator(flat_repo)


class TestMigrateAll:
    async def test_flattens_sub_records_into_inline_arrays(self, migrator, legacy_customers, store, flat_repo):
        report = await migrator.migrate_all()

        assert (report.total, report.migrated, report.skipped, report.failed) == (3, 3, 0, 0)
        doc = await store.get("customers/a")
        assert is_migrated(doc)
        assert [c["id"] for c in doc["checklists"]] == ["a-k1"]
        assert [m["id"] for m in doc["meetings"]] == ["a-m1", "a-m2"]
        assert doc["meetings"][0]["properties"][0]["id"] == "a-p1"

        customer = await flat_repo.get_customer("a")
        assert customer.meetings[0].properties[0].photos == ["https://cdn/1.jpg"]

    async def test_second_run_migrates_nothing(self, migrator, legacy_customers):
        await migrator.migrate_all()

        report = await migrator.migrate_all()

        assert (report.migrated, report.skipped, report.failed) == (0, 3, 0)

    async def test_customer_with_empty_collections_is_marked(self, migrator, legacy_customers, store):
        await migrator.migrate_all()

        doc = await store.get("customers/empty")
        assert is_migrated(doc)
        assert doc["checklists"] == []
        assert doc["meetings"] == []

    async def test_migration_does_not_touch_updated_at(self, migrator, legacy_customers, store):
        before = (await store.get("customers/a"))["updatedAt"]

        await migrator.migrate_all()

        assert (await store.get("customers/a"))["updatedAt"] == before

    async def test_failed_record_is_counted_and_retried(self, migrator, legacy_customers, store):
        store.fail("customers/b")

        first = await migrator.migrate_all()

        assert (first.migrated, first.failed) == (2, 1)
        assert first.errors[0].startswith("b:")
        assert not is_migrated(await store.get("customers/b"))

        second = await migrator.migrate_all()

        assert (second.migrated, second.skipped, second.failed) == (1, 2, 0)
        assert is_migrated(await store.get("customers/b"))

    async def test_customers_created_flattened_are_skipped(self, migrator, flat_repo):
        await flat_repo.create_customer(_make_customer("fresh", 1))

        report = await migrator.migrate_all()

        assert (report.migrated, report.skipped) == (0, 1)


class TestRollbackAll:
    async def test_rollback_restores_hierarchical_layout(self, migrator, legacy_customers, store, tree_repo):
        await migrator.migrate_all()

        report = await migrator.rollback_all()

        assert (report.migrated, report.failed) == (3, 0)
        doc = await store.get("customers/a")
        assert "checklists" not in doc
        assert "meetings" not in doc
        assert not is_migrated(doc)
        customer = await tree_repo.get_customer("a")
        assert [m.id for m in customer.meetings] == ["a-m1", "a-m2"]
        assert [p.id for p in customer.meetings[0].properties] == ["a-p1"]

    async def test_rollback_skips_unmigrated_customers(self, migrator, legacy_customers):
        report = await migrator.rollback_all()

        assert (report.migrated, report.skipped) == (0, 3)

    async def test_rollback_drops_sub_records_deleted_while_flattened(
        self, migrator, legacy_customers, flat_repo, tree_repo
    ):
        await migrator.migrate_all()
        await SyncCoordinator(flat_repo).delete_meeting("a", "a-m1")

        await migrator.rollback_all()

        customer = await tree_repo.get_customer("a")
        assert [(m.id, m.round) for m in customer.meetings] == [("a-m2", 1)]

    async def test_migrate_after_rollback_round_trips(self, migrator, legacy_customers, flat_repo):
        await migrator.migrate_all()
        before = await flat_repo.get_customer("b")
        await migrator.rollback_all()

        await migrator.migrate_all()

        after = await flat_repo.get_customer("b")
        assert after.model_dump(exclude={"migrated_at"}) == before.model_dump(exclude={"migrated_at"})


class TestRemapField:
    async def test_obsolete_stage_is_remapped(self, migrator, flat_repo, store):
        await flat_repo.create_customer(_make_customer("a", 1, stage="meeting_done"))
        await flat_repo.create_customer(_make_customer("b", 2, stage="received"))

        report = await migrator.remap_stages()

        assert (report.total, report.migrated, report.skipped) == (2, 1, 1)
        assert (await store.get("customers/a"))["stage"] == "meeting_in_progress"
        assert (await store.get("customers/b"))["stage"] == "received"

    async def test_generic_mapping(self, migrator, flat_repo, store):
        await flat_repo.create_customer(_make_customer("a", 1, price_type="monthly"))

        report = await migrator.remap_field("priceType", {"monthly": "rent"})

        assert report.migrated == 1
        assert (await store.get("customers/a"))["priceType"] == "rent"

    def test_stage_remap_table(self):
        assert STAGE_REMAP == {"meeting_done": "meeting_in_progress"}


class TestPropertyShapeUpgrade:
    def test_upgrade_legacy_property(self):
        upgraded = upgrade_legacy_property(
            {"id": "p1", "description": "2-room, 5th floor", "photos": ["https://cdn/x.jpg"]}
        )

        assert upgraded == {
            "id": "p1",
            "rawInput": "2-room, 5th floor",
            "roomName": "",
            "jibun": "",
            "agency": "",
            "agencyPhone": "",
            "photos": ["https://cdn/x.jpg"],
            "parsedText": "2-room, 5th floor",
        }

    def test_current_property_is_left_alone(self):
        assert upgrade_legacy_property({"id": "p1", "roomName": "101", "description": "x"}) is None
        assert upgrade_legacy_property({"id": "p1", "rawInput": "x"}) is None

    async def test_upgrades_inline_properties(self, migrator, flat_repo, store):
        await flat_repo.create_customer(_make_customer("a", 1, meetings=[]))
        await store.update(
            "customers/a",
            {"meetings": [{"id": "m1", "round": 1, "createdAt": 1, "properties": [{"id": "p1", "description": "legacy"}]}]},
        )

        report = await migrator.upgrade_property_shape()

        assert report.migrated == 1
        prop = (await store.get("customers/a"))["meetings"][0]["properties"][0]
        assert prop["roomName"] == ""
        assert prop["parsedText"] == "legacy"

    async def test_upgrades_sub_record_properties(self, migrator, tree_repo, store):
        await tree_repo.create_customer(_make_customer("a", 1, meetings=[]))
        await store.set("customers/a/meetings/m1", {"round": 1, "createdAt": 1})
        await store.set("customers/a/meetings/m1/properties/p1", {"description": "legacy"})

        report = await migrator.upgrade_property_shape()
        again = await migrator.upgrade_property_shape()

        assert report.migrated == 1
        assert again.migrated == 0
        prop = await store.get("customers/a/meetings/m1/properties/p1")
        assert prop["rawInput"] == "legacy"
        assert "description" not in prop


class TestSyncAfterMigration:
    async def test_coordinator_writes_inline_after_migration(self, migrator, legacy_customers, flat_repo, store):
        await migrator.migrate_all()

        await SyncCoordinator(flat_repo).apply_update(
            "a", CustomerUpdate(checklists=[ChecklistItem(id="new", text="Sign")])
        )

        doc = await store.get("customers/a")
        assert [c["id"] for c in doc["checklists"]] == ["new"]


class TestLegacyCustomersInFlattenedLayout:
    async def test_unmigrated_customer_reads_from_sub_records(self, legacy_customers, flat_repo):
        customer = await flat_repo.get_customer("a")

        assert [c.id for c in customer.checklists] == ["a-k1"]
        assert [m.id for m in customer.meetings] == ["a-m1", "a-m2"]
        assert [p.id for p in customer.meetings[0].properties] == ["a-p1"]

    async def test_write_to_legacy_customer_survives_migrate_all(
        self, migrator, legacy_customers, flat_repo, store
    ):
        await SyncCoordinator(flat_repo).apply_update(
            "a", CustomerUpdate(checklists=[ChecklistItem(id="new", text="Sign")])
        )

        assert is_migrated(await store.get("customers/a"))

        report = await migrator.migrate_all()

        assert (report.migrated, report.skipped) == (2, 1)
        customer = await flat_repo.get_customer("a")
        assert [c.id for c in customer.checklists] == ["new"]
        assert [m.id for m in customer.meetings] == ["a-m1", "a-m2"]

    async def test_scalar_write_keeps_legacy_meetings(self, legacy_customers, flat_repo, store):
        await SyncCoordinator(flat_repo).apply_update("b", {"memo": "call after 6pm"})

        doc = await store.get("customers/b")
        assert doc["memo"] == "call after 6pm"
        assert [m["id"] for m in doc["meetings"]] == ["b-m1", "b-m2"]
        assert [c["id"] for c in doc["checklists"]] == ["b-k1"]
