"""Tests for session grouping and session-level day re-anchoring."""

from debt.domain.models import SleepEpisode
from debt.sessions import group_into_sessions, reanchor_sessions, regroup_all, regroup_span
from tests.fakes import at


def episode(external_id, start, end, day_id="", segment_index=0, source_id="watch"):
    return SleepEpisode(
        external_id=external_id,
        segment_index=segment_index,
        start=start,
        end=end,
        source_id=source_id,
        anchored_day_id=day_id,
    )


class TestGroupIntoSessions:
    def test_empty(self):
        assert group_into_sessions([]) == []

    def test_gap_below_threshold_merges(self):
        a = episode("a", at(2024, 3, 14, 23), at(2024, 3, 15, 2))
        b = episode("b", at(2024, 3, 15, 2, 59, 59), at(2024, 3, 15, 6))
        assert len(group_into_sessions([a, b], 3600)) == 1

    def test_gap_equal_to_threshold_splits(self):
        a = episode("a", at(2024, 3, 14, 23), at(2024, 3, 15, 2))
        b = episode("b", at(2024, 3, 15, 3), at(2024, 3, 15, 6))
        sessions = group_into_sessions([a, b], 3600)
        assert [[e.external_id for e in s] for s in sessions] == [["a"], ["b"]]

    def test_input_order_is_irrelevant(self):
        a = episode("a", at(2024, 3, 14, 23), at(2024, 3, 15, 2))
        b = episode("b", at(2024, 3, 15, 2, 30), at(2024, 3, 15, 6))
        c = episode("c", at(2024, 3, 15, 14), at(2024, 3, 15, 15))
        sessions = group_into_sessions([c, b, a])
        assert [[e.external_id for e in s] for s in sessions] == [["a", "b"], ["c"]]

    def test_gap_measured_from_latest_end(self):
        # A long sample overlapping a short one keeps the session open
        long = episode("long", at(2024, 3, 14, 23), at(2024, 3, 15, 6))
        short = episode("short", at(2024, 3, 14, 23, 30), at(2024, 3, 15, 0))
        late = episode("late", at(2024, 3, 15, 6, 30), at(2024, 3, 15, 7))
        assert len(group_into_sessions([long, short, late])) == 1


class TestReanchorSessions:
    def test_early_segment_moves_to_session_end_day(self, tz):
        first = episode("n", at(2024, 3, 14, 23), at(2024, 3, 15, 4), "2024-03-14@anchor4", 0)
        second = episode("n", at(2024, 3, 15, 4), at(2024, 3, 15, 6, 30), "2024-03-15@anchor4", 1)

        result = reanchor_sessions([first, second], 4, tz)

        assert first.anchored_day_id == "2024-03-15@anchor4"
        assert second.anchored_day_id == "2024-03-15@anchor4"
        assert result.reanchored == [first]
        assert result.dirty_day_ids == {"2024-03-14@anchor4", "2024-03-15@anchor4"}
        assert result.session_count == 1

    def test_already_anchored_session_is_clean(self, tz):
        nap = episode("nap", at(2024, 3, 15, 13), at(2024, 3, 15, 14), "2024-03-15@anchor4")
        result = reanchor_sessions([nap], 4, tz)
        assert result.reanchored == []
        assert result.dirty_day_ids == set()

    def test_separate_sessions_keep_separate_days(self, tz):
        night = episode("night", at(2024, 3, 14, 23), at(2024, 3, 15, 3, 30), "2024-03-14@anchor4")
        nap = episode("nap", at(2024, 3, 15, 13), at(2024, 3, 15, 14), "2024-03-15@anchor4")
        result = reanchor_sessions([night, nap], 4, tz)
        assert night.anchored_day_id == "2024-03-14@anchor4"
        assert result.session_count == 2
        assert result.dirty_day_ids == set()


class TestRegroupSpan:
    async def test_widens_span_so_sessions_are_not_cut(self, store, tz):
        # A chain of episodes 30 min apart; only the last one is "touched"
        chain = [
            episode(f"e{i}", at(2024, 3, 14, 20 + i), at(2024, 3, 14, 20 + i, 30), "2024-03-14@anchor4")
            for i in range(4)
        ]
        tail = episode("tail", at(2024, 3, 15, 0), at(2024, 3, 15, 5), "2024-03-15@anchor4")
        await store.upsert_episodes([*chain, tail])

        result = await regroup_span(store, tail.start, tail.end, 4, tz)

        assert {e.anchored_day_id for e in store.episodes.values()} == {"2024-03-15@anchor4"}
        assert len(result.reanchored) == 4
        assert result.dirty_day_ids == {"2024-03-14@anchor4", "2024-03-15@anchor4"}

    async def test_regroup_all_with_no_episodes(self, store, tz):
        result = await regroup_all(store, 4, tz)
        assert result.session_count == 0
        assert result.dirty_day_ids == set()

    async def test_regroup_all_rewrites_anchor_suffix(self, store, tz):
        night = episode("night", at(2024, 3, 14, 23), at(2024, 3, 15, 6), "2024-03-15@anchor4")
        await store.upsert_episodes([night])

        result = await regroup_all(store, 6, tz)

        assert store.episodes[("night", 0)].anchored_day_id == "2024-03-14@anchor6"
        assert result.dirty_day_ids == {"2024-03-15@anchor4", "2024-03-14@anchor6"}
