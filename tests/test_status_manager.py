"""Tests for src.core.status_manager — the status orchestrator."""

from __future__ import annotations

import asyncio
from datetime import date
from unittest.mock import MagicMock

import pytest

from conftest import at
from src.core.status_config import StatusConfig
from src.core.status_factory import StatusFactory
from src.core.status_manager import StatusManager
from src.data.models import ReportRecord, ReportStatus, TodayReports
from src.ports.storage_port import StorageError


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeStatusStore:
    def __init__(self, status=ReportStatus.NOT_STARTED, force_unlock=False):
        self.status = status
        self.force_unlock = force_unlock
        self.status_saves: list[ReportStatus] = []
        self.unlock_saves: list[bool] = []
        self.fail = False

    async def get_status(self):
        if self.fail:
            raise StorageError("disk gone")
        return self.status

    async def save_status(self, status):
        if self.fail:
            raise StorageError("disk gone")
        self.status = status
        self.status_saves.append(status)

    async def get_force_unlock(self):
        if self.fail:
            raise StorageError("disk gone")
        return self.force_unlock

    async def save_force_unlock(self, value):
        if self.fail:
            raise StorageError("disk gone")
        self.force_unlock = value
        self.unlock_saves.append(value)


class FakePosts:
    def __init__(self):
        self.reports: dict[date, ReportRecord] = {}
        self.published_calls: list[tuple[int, bool]] = []

    def add(self, day: date, published: bool = False) -> ReportRecord:
        record = ReportRecord(id=len(self.reports) + 1, date=at(9, day=day.day), published=published)
        self.reports[day] = record
        return record

    async def get_today_reports(self, day):
        return TodayReports(regular=self.reports.get(day))

    async def set_published(self, report_id, value):
        self.published_calls.append((report_id, value))
        for record in self.reports.values():
            if record.id == report_id:
                record.published = value


TODAY = date(2025, 1, 15)


@pytest.fixture
def store():
    return FakeStatusStore()


@pytest.fixture
def posts():
    return FakePosts()


@pytest.fixture
def collaborators():
    return {
        "countdown": MagicMock(),
        "rescheduler": MagicMock(),
        "widgets": MagicMock(),
    }


@pytest.fixture
def manager(config, posts, store, clock, collaborators):
    m = StatusManager(StatusFactory(config), posts, store, clock, **collaborators)
    m.mark_reports_loaded()
    return m


# ---------------------------------------------------------------------------
# load
# ---------------------------------------------------------------------------


class TestLoad:
    @pytest.mark.asyncio
    async def test_loads_persisted_state(self, manager, store, collaborators):
        store.status = ReportStatus.IN_PROGRESS
        store.force_unlock = True

        await manager.load()

        assert manager.status == ReportStatus.IN_PROGRESS
        assert manager.force_unlock is True
        assert manager.current_day == TODAY
        collaborators["countdown"].update_status.assert_called_with(ReportStatus.IN_PROGRESS)

    @pytest.mark.asyncio
    async def test_storage_failure_uses_defaults(self, manager, store):
        store.fail = True
        await manager.load()
        assert manager.status == ReportStatus.NOT_STARTED
        assert manager.force_unlock is False


# ---------------------------------------------------------------------------
# recompute
# ---------------------------------------------------------------------------


class TestRecompute:
    @pytest.mark.asyncio
    async def test_no_report_inside_window(self, manager):
        assert await manager.recompute() == ReportStatus.NOT_STARTED

    @pytest.mark.asyncio
    async def test_draft_inside_window(self, manager, posts, store, collaborators):
        posts.add(TODAY)

        status = await manager.recompute()

        assert status == ReportStatus.IN_PROGRESS
        assert store.status_saves == [ReportStatus.IN_PROGRESS]
        collaborators["countdown"].update_status.assert_called_with(ReportStatus.IN_PROGRESS)
        collaborators["rescheduler"].schedule_if_needed.assert_called_once()
        collaborators["widgets"].reload_all.assert_called_once()

    @pytest.mark.asyncio
    async def test_unpublished_report_after_window(self, manager, posts, clock):
        clock.set(at(23))
        posts.add(TODAY)
        assert await manager.recompute() == ReportStatus.NOT_SENT

    @pytest.mark.asyncio
    async def test_no_report_after_window(self, manager, clock):
        clock.set(at(23))
        assert await manager.recompute() == ReportStatus.NOT_CREATED

    @pytest.mark.asyncio
    async def test_published_report(self, manager, posts):
        posts.add(TODAY, published=True)
        assert await manager.recompute() == ReportStatus.SENT

    @pytest.mark.asyncio
    async def test_idempotent(self, manager, posts, store, collaborators):
        posts.add(TODAY)
        events = []
        manager.add_listener(events.append)

        await manager.recompute()
        await manager.recompute()

        assert store.status_saves == [ReportStatus.IN_PROGRESS]
        assert events == [ReportStatus.IN_PROGRESS]
        collaborators["rescheduler"].schedule_if_needed.assert_called_once()

    @pytest.mark.asyncio
    async def test_listener_receives_change(self, manager, posts):
        events = []
        manager.add_listener(events.append)
        posts.add(TODAY, published=True)

        await manager.recompute()

        assert events == [ReportStatus.SENT]

    @pytest.mark.asyncio
    async def test_listener_failure_is_contained(self, manager, posts):
        manager.add_listener(MagicMock(side_effect=RuntimeError("boom")))
        posts.add(TODAY, published=True)
        assert await manager.recompute() == ReportStatus.SENT

    @pytest.mark.asyncio
    async def test_collaborator_failure_is_contained(self, manager, posts, collaborators):
        collaborators["rescheduler"].schedule_if_needed.side_effect = RuntimeError("boom")
        collaborators["widgets"].reload_all.side_effect = OSError("read-only")
        posts.add(TODAY)
        assert await manager.recompute() == ReportStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_memory_authoritative(self, manager, posts, store):
        posts.add(TODAY)
        store.fail = True

        status = await manager.recompute()

        assert status == ReportStatus.IN_PROGRESS
        assert manager.status == ReportStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_works_without_collaborators(self, config, posts, store, clock):
        manager = StatusManager(StatusFactory(config), posts, store, clock)
        posts.add(TODAY)
        assert await manager.recompute() == ReportStatus.IN_PROGRESS


# ---------------------------------------------------------------------------
# Cold start
# ---------------------------------------------------------------------------


class TestColdStart:
    @pytest.mark.asyncio
    async def test_before_reports_loaded_outside_window(self, config, posts, store, clock):
        clock.set(at(23))
        manager = StatusManager(StatusFactory(config), posts, store, clock)
        assert await manager.recompute() == ReportStatus.NOT_CREATED

    @pytest.mark.asyncio
    async def test_before_reports_loaded_with_force_unlock(self, config, posts, store, clock):
        clock.set(at(23))
        store.force_unlock = True
        manager = StatusManager(StatusFactory(config), posts, store, clock)
        assert await manager.recompute() == ReportStatus.NOT_STARTED


# ---------------------------------------------------------------------------
# Day rollover
# ---------------------------------------------------------------------------


class TestDayRollover:
    @pytest.mark.asyncio
    async def test_sent_resets_on_new_day(self, config, posts, store, clock, collaborators):
        clock.set(at(20, day=14))
        store.status = ReportStatus.SENT
        store.force_unlock = True
        manager = StatusManager(StatusFactory(config), posts, store, clock, **collaborators)
        manager.mark_reports_loaded()
        await manager.load()
        assert manager.current_day == date(2025, 1, 14)

        clock.set(at(10, day=15))
        status = await manager.recompute()

        assert status == ReportStatus.NOT_STARTED
        assert manager.force_unlock is False
        assert store.force_unlock is False
        assert manager.current_day == TODAY
        assert ReportStatus.NOT_STARTED in store.status_saves
        collaborators["widgets"].reload_all.assert_called()
        collaborators["rescheduler"].schedule_if_needed.assert_called()

    @pytest.mark.asyncio
    async def test_reset_notifies_even_when_decision_agrees(
        self, config, posts, store, clock, collaborators,
    ):
        clock.set(at(20, day=14))
        store.status = ReportStatus.SENT
        manager = StatusManager(StatusFactory(config), posts, store, clock, **collaborators)
        manager.mark_reports_loaded()
        await manager.load()
        events = []
        manager.add_listener(events.append)

        # First recompute of the new day lands inside the window with no report,
        # so the decision is notStarted as well.
        clock.set(at(10, day=15))
        await manager.recompute()

        assert events == [ReportStatus.NOT_STARTED]
        collaborators["rescheduler"].schedule_if_needed.assert_called_once()
        collaborators["countdown"].update_status.assert_called_with(ReportStatus.NOT_STARTED)

    @pytest.mark.asyncio
    async def test_in_progress_is_not_reset(self, config, posts, store, clock):
        clock.set(at(21, day=14))
        store.status = ReportStatus.IN_PROGRESS
        manager = StatusManager(StatusFactory(config), posts, store, clock)
        manager.mark_reports_loaded()
        await manager.load()

        clock.set(at(0, 30, day=15))
        status = await manager.recompute()

        assert store.status_saves[0] != ReportStatus.NOT_STARTED
        # Re-evaluated against the new day: no report yet, window closed.
        assert status == ReportStatus.NOT_CREATED

    @pytest.mark.asyncio
    async def test_no_reset_when_disabled(self, posts, store, clock):
        config = StatusConfig(auto_reset_on_new_day=False)
        clock.set(at(20, day=14))
        store.status = ReportStatus.SENT
        manager = StatusManager(StatusFactory(config), posts, store, clock)
        await manager.load()

        clock.set(at(10, day=15))
        await manager.recompute()

        assert manager.current_day == TODAY
        assert store.unlock_saves == [False]


# ---------------------------------------------------------------------------
# Force unlock
# ---------------------------------------------------------------------------


class TestForceUnlock:
    @pytest.mark.asyncio
    async def test_unlock_reopens_published_report(self, manager, posts, store):
        record = posts.add(TODAY, published=True)
        await manager.recompute()
        assert manager.status == ReportStatus.SENT

        assert await manager.unlock_report_creation() is True

        assert manager.status == ReportStatus.NOT_STARTED
        assert manager.force_unlock is True
        assert store.force_unlock is True
        assert store.status == ReportStatus.NOT_STARTED
        assert posts.published_calls == [(record.id, False)]
        assert TODAY in posts.reports  # never deleted

    @pytest.mark.asyncio
    async def test_unlock_after_midnight_survives_next_recompute(self, config, posts, store, clock):
        clock.set(at(20, day=14))
        manager = StatusManager(StatusFactory(config), posts, store, clock)
        manager.mark_reports_loaded()
        await manager.load()

        clock.set(at(9, day=15))
        posts.add(TODAY, published=True)
        assert await manager.unlock_report_creation() is True
        assert manager.current_day == TODAY

        status = await manager.recompute()

        assert manager.force_unlock is True
        assert status == ReportStatus.NOT_STARTED

    @pytest.mark.asyncio
    async def test_unlock_is_idempotent(self, manager, posts):
        posts.add(TODAY, published=True)
        await manager.unlock_report_creation()
        assert await manager.unlock_report_creation() is False
        assert len(posts.published_calls) == 1

    @pytest.mark.asyncio
    async def test_unlock_disabled_by_config(self, posts, store, clock):
        manager = StatusManager(
            StatusFactory(StatusConfig(enable_force_unlock=False)), posts, store, clock,
        )
        assert await manager.unlock_report_creation() is False
        assert manager.force_unlock is False

    @pytest.mark.asyncio
    async def test_unlocked_draft_stays_not_started(self, manager, posts):
        posts.add(TODAY, published=True)
        await manager.unlock_report_creation()

        assert await manager.recompute() == ReportStatus.NOT_STARTED
        assert manager.force_unlock is True

    @pytest.mark.asyncio
    async def test_publishing_clears_unlock(self, manager, posts, store):
        record = posts.add(TODAY, published=True)
        await manager.unlock_report_creation()

        record.published = True  # user sent it again
        status = await manager.recompute()

        assert status == ReportStatus.SENT
        assert manager.force_unlock is False
        assert store.force_unlock is False

    @pytest.mark.asyncio
    async def test_unlock_one_shot_yields_fresh_status(self, manager, posts, store):
        posts.add(TODAY, published=True)
        store.force_unlock = True

        status = await manager.recompute()

        assert manager.force_unlock is False
        assert status == ReportStatus.SENT

    @pytest.mark.asyncio
    async def test_external_unlock_notifies_without_status_change(
        self, manager, posts, store, collaborators,
    ):
        await manager.recompute()
        assert manager.status == ReportStatus.NOT_STARTED
        events = []
        manager.add_listener(events.append)

        store.force_unlock = True  # flipped by another process
        status = await manager.recompute()

        assert status == ReportStatus.NOT_STARTED
        assert manager.force_unlock is True
        assert store.status_saves == []
        assert events == [ReportStatus.NOT_STARTED]


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


class TestSerialization:
    @pytest.mark.asyncio
    async def test_concurrent_recomputes_do_not_interleave(self, config, store, clock):
        active = 0
        overlaps = []

        class SlowPosts(FakePosts):
            async def get_today_reports(self, day):
                nonlocal active
                active += 1
                overlaps.append(active)
                await asyncio.sleep(0.01)
                active -= 1
                return await super().get_today_reports(day)

        posts = SlowPosts()
        posts.add(TODAY)
        manager = StatusManager(StatusFactory(config), posts, store, clock)
        manager.mark_reports_loaded()

        await asyncio.gather(manager.recompute(), manager.recompute(), manager.unlock_report_creation())

        assert max(overlaps) == 1
