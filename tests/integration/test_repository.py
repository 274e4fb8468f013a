"""Integration tests: SleepDebtRepository against real Postgres."""

from datetime import UTC, date, datetime

from sqlalchemy import func, select

from debt.domain.models import DailySummary, NotificationPrefs, SleepEpisode, UserSettings
from debt.domain.orm import SleepEpisodeModel
from debt.repository import SleepDebtRepository, repository_scope


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 3, day, hour, minute, tzinfo=UTC)


def episode(external_id, start, end, day_id, segment_index=0):
    return SleepEpisode(
        external_id=external_id,
        segment_index=segment_index,
        start=start,
        end=end,
        source_id="watch",
        anchored_day_id=day_id,
    )


def summary(day: date, cumulative: int) -> DailySummary:
    return DailySummary(
        day_id=f"{day.isoformat()}@anchor4",
        date=day,
        actual_minutes=400,
        delta_minutes=80,
        cumulative_debt_minutes=cumulative,
        source_count=1,
    )


async def test_settings_default_then_round_trip(db_session):
    repo = SleepDebtRepository(db_session)
    assert await repo.get_settings() == UserSettings()

    saved = UserSettings(
        goal_minutes=450,
        day_boundary_hour=5,
        notification_prefs=NotificationPrefs(thresholds_minutes=[60]),
        last_sync_cursor="c1",
        last_sync_at=at(16, 12),
    )
    await repo.save_settings(saved)
    await repo.commit()
    await repo.save_settings(saved.model_copy(update={"goal_minutes": 400}))
    await repo.commit()

    loaded = await repo.get_settings()
    assert loaded.goal_minutes == 400
    assert loaded.notification_prefs.thresholds_minutes == [60]
    assert loaded.last_sync_at == at(16, 12)


async def test_episode_upsert_is_keyed_by_segment(db_session):
    repo = SleepDebtRepository(db_session)
    first = episode("n", at(14, 23), at(15, 4), "2024-03-14@anchor4")
    await repo.upsert_episodes([first])
    await repo.upsert_episodes([first.model_copy(update={"end": at(15, 3)})])
    await repo.commit()

    count = await db_session.execute(select(func.count()).select_from(SleepEpisodeModel))
    assert count.scalar_one() == 1
    stored = await repo.get_episodes_by_external_ids(["n"])
    assert stored[0].end == at(15, 3)
    assert stored[0].id == first.id


async def test_episode_queries(db_session):
    repo = SleepDebtRepository(db_session)
    await repo.upsert_episodes(
        [
            episode("n", at(14, 23), at(15, 4), "2024-03-14@anchor4", 0),
            episode("n", at(15, 4), at(15, 6), "2024-03-15@anchor4", 1),
            episode("nap", at(15, 13), at(15, 14), "2024-03-15@anchor4"),
        ]
    )

    assert await repo.get_all_external_ids() == {"n", "nap"}
    assert await repo.get_episode_day_ids() == {"2024-03-14@anchor4", "2024-03-15@anchor4"}
    assert await repo.get_episode_time_bounds() == (at(14, 23), at(15, 14))
    assert len(await repo.get_episodes_for_day("2024-03-15@anchor4")) == 2
    overlapping = await repo.get_episodes_overlapping(at(15, 5), at(15, 13, 30))
    assert [(e.external_id, e.segment_index) for e in overlapping] == [("n", 1), ("nap", 0)]
    in_range = await repo.get_episodes_in_date_range(date(2024, 3, 15), date(2024, 3, 15))
    assert {e.external_id for e in in_range} == {"n", "nap"}

    assert await repo.delete_episodes_by_external_ids(["n"]) == 2
    assert await repo.get_all_external_ids() == {"nap"}


async def test_reanchor_is_visible_to_later_reads(db_session):
    repo = SleepDebtRepository(db_session)
    early = episode("n", at(14, 23), at(15, 4), "2024-03-14@anchor4")
    await repo.upsert_episodes([early])
    loaded = (await repo.get_episodes_by_external_ids(["n"]))[0]

    loaded.anchored_day_id = "2024-03-15@anchor4"
    await repo.reanchor_episodes([loaded])

    assert (await repo.get_episodes_by_external_ids(["n"]))[0].anchored_day_id == "2024-03-15@anchor4"
    in_range = await repo.get_episodes_in_date_range(date(2024, 3, 15), date(2024, 3, 15))
    assert [e.anchored_day_id for e in in_range] == ["2024-03-15@anchor4"]


async def test_summary_upsert_and_backward_seed(db_session):
    repo = SleepDebtRepository(db_session)
    await repo.upsert_summaries([summary(date(2024, 1, 2), 90), summary(date(2024, 3, 14), 100)])
    await repo.upsert_summaries([summary(date(2024, 3, 14), 170)])
    await repo.commit()

    assert (await repo.get_summary("2024-03-14@anchor4")).cumulative_debt_minutes == 170
    seed = await repo.get_last_summary_before(date(2024, 3, 1))
    assert seed.day_id == "2024-01-02@anchor4"
    assert await repo.get_last_summary_before(date(2024, 1, 2)) is None
    window = await repo.get_summaries(date(2024, 1, 1), date(2024, 3, 31))
    assert [s.date for s in window] == [date(2024, 1, 2), date(2024, 3, 14)]

    assert await repo.delete_summaries(["2024-01-02@anchor4", "missing"]) == 1
    assert await repo.get_summary_day_ids() == {"2024-03-14@anchor4"}


async def test_scope_without_commit_discards_writes(session_factory):
    async with repository_scope(session_factory) as repo:
        await repo.upsert_summaries([summary(date(2024, 3, 14), 10)])

    async with repository_scope(session_factory) as repo:
        assert await repo.get_summary_day_ids() == set()
