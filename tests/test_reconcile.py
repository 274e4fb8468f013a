"""Tests for reconciling change sets against stored episodes."""

from debt.domain.models import ChangeSet, SleepCategory
from debt.reconcile import apply_changes
from tests.fakes import at, interval

NIGHT = interval("night", at(2024, 3, 14, 23), at(2024, 3, 15, 6, 30))
NAP = interval("nap", at(2024, 3, 15, 13), at(2024, 3, 15, 14), source_id="phone")


class TestAdditions:
    async def test_new_record_inserts_all_segments(self, store, user_settings, tz):
        result = await apply_changes(store, ChangeSet(added=[NIGHT]), user_settings, tz)

        assert result.inserted == 2
        assert sorted(store.episodes) == [("night", 0), ("night", 1)]
        assert result.dirty_day_ids == {"2024-03-14@anchor4", "2024-03-15@anchor4"}
        assert result.span_start == NIGHT.start
        assert result.span_end == NIGHT.end

    async def test_redelivery_is_a_no_op(self, store, user_settings, tz):
        await apply_changes(store, ChangeSet(added=[NIGHT, NAP]), user_settings, tz)
        stored_ids = {k: e.id for k, e in store.episodes.items()}

        result = await apply_changes(store, ChangeSet(added=[NIGHT, NAP]), user_settings, tz)

        assert result.dirty_day_ids == set()
        assert result.unchanged == 2
        assert result.inserted == 0
        assert not result.has_changes
        assert {k: e.id for k, e in store.episodes.items()} == stored_ids

    async def test_redelivery_after_reanchoring_is_a_no_op(self, store, user_settings, tz):
        await apply_changes(store, ChangeSet(added=[NIGHT]), user_settings, tz)
        store.episodes[("night", 0)].anchored_day_id = "2024-03-15@anchor4"

        result = await apply_changes(store, ChangeSet(added=[NIGHT]), user_settings, tz)

        assert result.dirty_day_ids == set()
        assert store.episodes[("night", 0)].anchored_day_id == "2024-03-15@anchor4"

    async def test_edited_record_replaces_segments(self, store, user_settings, tz):
        await apply_changes(store, ChangeSet(added=[NIGHT]), user_settings, tz)
        shortened = NIGHT.model_copy(update={"end": at(2024, 3, 15, 3)})

        result = await apply_changes(store, ChangeSet(added=[shortened]), user_settings, tz)

        assert sorted(store.episodes) == [("night", 0)]
        assert store.episodes[("night", 0)].end == at(2024, 3, 15, 3)
        assert result.dirty_day_ids == {"2024-03-14@anchor4", "2024-03-15@anchor4"}
        assert result.deleted == 2
        assert result.inserted == 1

    async def test_duplicates_within_batch_collapse_to_last(self, store, user_settings, tz):
        first = NAP.model_copy(update={"end": at(2024, 3, 15, 13, 30)})
        await apply_changes(store, ChangeSet(added=[first, NAP]), user_settings, tz)

        assert len(store.episodes) == 1
        assert store.episodes[("nap", 0)].end == NAP.end


class TestDeletions:
    async def test_delete_removes_every_segment(self, store, user_settings, tz):
        await apply_changes(store, ChangeSet(added=[NIGHT, NAP]), user_settings, tz)

        result = await apply_changes(store, ChangeSet(deleted=["night"]), user_settings, tz)

        assert sorted(store.episodes) == [("nap", 0)]
        assert result.deleted == 2
        assert result.dirty_day_ids == {"2024-03-14@anchor4", "2024-03-15@anchor4"}

    async def test_delete_of_unknown_id_is_harmless(self, store, user_settings, tz):
        result = await apply_changes(store, ChangeSet(deleted=["ghost"]), user_settings, tz)
        assert result.deleted == 0
        assert result.dirty_day_ids == set()

    async def test_delete_then_add_same_id_keeps_one_copy(self, store, user_settings, tz):
        await apply_changes(store, ChangeSet(added=[NAP]), user_settings, tz)
        moved = NAP.model_copy(update={"start": at(2024, 3, 15, 15), "end": at(2024, 3, 15, 16)})

        await apply_changes(store, ChangeSet(added=[moved], deleted=["nap"]), user_settings, tz)

        assert len(store.episodes) == 1
        assert store.episodes[("nap", 0)].start == at(2024, 3, 15, 15)

    async def test_full_snapshot_removes_absent_records(self, store, user_settings, tz):
        await apply_changes(store, ChangeSet(added=[NIGHT, NAP]), user_settings, tz)

        result = await apply_changes(
            store, ChangeSet(added=[NAP], full_snapshot=True), user_settings, tz
        )

        assert sorted(store.episodes) == [("nap", 0)]
        assert result.unchanged == 1
        assert result.dirty_day_ids == {"2024-03-14@anchor4", "2024-03-15@anchor4"}


class TestWithdrawnRecords:
    async def test_edit_to_awake_removes_stored_segments(self, store, user_settings, tz):
        await apply_changes(store, ChangeSet(added=[NAP]), user_settings, tz)
        awake = NAP.model_copy(update={"category": SleepCategory.AWAKE})

        result = await apply_changes(store, ChangeSet(added=[awake]), user_settings, tz)

        assert store.episodes == {}
        assert result.deleted == 1
        assert result.dirty_day_ids == {"2024-03-15@anchor4"}

    async def test_edit_to_empty_interval_removes_stored_segments(self, store, user_settings, tz):
        await apply_changes(store, ChangeSet(added=[NAP]), user_settings, tz)
        empty = NAP.model_copy(update={"end": NAP.start})

        result = await apply_changes(store, ChangeSet(added=[empty]), user_settings, tz)

        assert store.episodes == {}
        assert result.dirty_day_ids == {"2024-03-15@anchor4"}

    async def test_snapshot_with_non_asleep_latest_version(self, store, user_settings, tz):
        await apply_changes(store, ChangeSet(added=[NIGHT, NAP]), user_settings, tz)
        in_bed = NIGHT.model_copy(update={"category": SleepCategory.IN_BED})

        result = await apply_changes(
            store, ChangeSet(added=[in_bed, NAP], full_snapshot=True), user_settings, tz
        )

        assert sorted(store.episodes) == [("nap", 0)]
        assert result.dirty_day_ids == {"2024-03-14@anchor4", "2024-03-15@anchor4"}

    async def test_unknown_non_asleep_record_touches_nothing(self, store, user_settings, tz):
        in_bed = interval(
            "bed", at(2024, 3, 15, 22), at(2024, 3, 15, 23), category=SleepCategory.IN_BED
        )

        result = await apply_changes(store, ChangeSet(added=[in_bed]), user_settings, tz)

        assert result.dirty_day_ids == set()
        assert not result.has_changes


async def test_apply_changes_never_commits(store, user_settings, tz):
    await apply_changes(store, ChangeSet(added=[NIGHT], deleted=["x"]), user_settings, tz)
    assert store.commits == 0
