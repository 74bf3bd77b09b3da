"""Tests for the update orchestrator."""

from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from modstamp.core.dates import DateFormatter
from modstamp.core.orchestrator import UpdateOrchestrator, UpdateOutcome, UpdateResult, WriteMarker, WriteState
from modstamp.core.policy import BlockReason
from modstamp.services.settings import Settings

from tests.helpers import FrozenClock, InMemoryHost, make_document


def _orchestrator(
    host: InMemoryHost,
    settings: Settings,
    clock: FrozenClock,
    **kwargs,
) -> UpdateOrchestrator:
    formatter = DateFormatter(settings.moment_format, tz="UTC", clock=clock)
    return UpdateOrchestrator(host, settings, formatter=formatter, **kwargs)


def test_requires_a_host(settings: Settings) -> None:
    with pytest.raises(ValueError):
        UpdateOrchestrator(None, settings)  # type: ignore[arg-type]


def test_update_now_writes_the_tracked_field(host: InMemoryHost, settings: Settings, clock: FrozenClock) -> None:
    document = make_document()
    host.metadata[document.path] = {"title": "Today"}

    result = _orchestrator(host, settings, clock).update_now(document)

    assert result.outcome is UpdateOutcome.WRITTEN
    assert result.value == "2024-01-01T15:00"
    assert host.metadata[document.path] == {"title": "Today", "modified": "2024-01-01T15:00"}


def test_burst_of_notifications_writes_once(host: InMemoryHost, settings: Settings, clock: FrozenClock) -> None:
    async def _run() -> list[UpdateResult]:
        results: list[UpdateResult] = []
        orchestrator = _orchestrator(host, settings, clock, result_callback=results.append)
        document = make_document()
        for _ in range(4):
            assert orchestrator.notify(document) is True
            await asyncio.sleep(0.002)
        await asyncio.sleep(0.05)
        return results

    results = asyncio.run(_run())

    assert [result.outcome for result in results] == [UpdateOutcome.WRITTEN]
    assert len(host.writes) == 1


def test_documents_are_debounced_independently(host: InMemoryHost, settings: Settings, clock: FrozenClock) -> None:
    async def _run() -> None:
        orchestrator = _orchestrator(host, settings, clock)
        orchestrator.notify(make_document("a.md"))
        orchestrator.notify(make_document("b.md"))
        orchestrator.notify(make_document("a.md"))
        await asyncio.sleep(0.05)

    asyncio.run(_run())

    assert sorted(path for path, _ in host.writes) == ["a.md", "b.md"]


def test_policy_is_evaluated_when_the_timer_fires(host: InMemoryHost, settings: Settings, clock: FrozenClock) -> None:
    async def _run() -> list[UpdateResult]:
        results: list[UpdateResult] = []
        orchestrator = _orchestrator(host, settings, clock, result_callback=results.append)
        document = make_document()
        orchestrator.notify(document)
        host.metadata[document.path] = {"exclude_modified_update": True}
        await asyncio.sleep(0.05)
        return results

    results = asyncio.run(_run())

    assert results[0].outcome is UpdateOutcome.BLOCKED
    assert results[0].reason is BlockReason.EXCLUDED_BY_FIELD
    assert host.writes == []


def test_race_guard_skips_recent_updates(host: InMemoryHost, settings: Settings, clock: FrozenClock) -> None:
    orchestrator = _orchestrator(host, settings, clock)
    document = make_document()

    assert orchestrator.update_now(document).outcome is UpdateOutcome.WRITTEN
    orchestrator.marker.reset(document.path)

    clock.advance(seconds=10)
    skipped = orchestrator.update_now(document)
    assert skipped.outcome is UpdateOutcome.TOO_SOON
    assert skipped.seconds_since_last_update == 10

    clock.advance(seconds=21)
    assert orchestrator.update_now(document).outcome is UpdateOutcome.WRITTEN
    assert len(host.writes) == 2


def test_own_write_notification_is_swallowed(host: InMemoryHost, settings: Settings, clock: FrozenClock) -> None:
    async def _run() -> None:
        orchestrator = _orchestrator(host, settings, clock)
        document = make_document()

        orchestrator.update_now(document)
        assert orchestrator.marker.state(document.path) is WriteState.AWAITING_ECHO

        assert orchestrator.notify(document) is False
        assert not orchestrator.scheduler.is_pending(document.path)
        assert orchestrator.marker.state(document.path) is WriteState.IDLE

        assert orchestrator.notify(document) is True
        assert orchestrator.scheduler.is_pending(document.path)
        await orchestrator.scheduler.aclose()

    asyncio.run(_run())


def test_echo_during_the_write_is_swallowed(host: InMemoryHost, settings: Settings, clock: FrozenClock) -> None:
    async def _run() -> None:
        orchestrator = _orchestrator(host, settings, clock)
        document = make_document()
        echoes: list[bool] = []
        host.on_write = lambda path: echoes.append(orchestrator.notify(make_document(path)))

        orchestrator.update_now(document)

        assert echoes == [False]
        assert orchestrator.marker.state(document.path) is WriteState.IDLE
        assert orchestrator.scheduler.pending_keys() == []

    asyncio.run(_run())


def test_absorb_echo(host: InMemoryHost, settings: Settings, clock: FrozenClock) -> None:
    orchestrator = _orchestrator(host, settings, clock)
    document = make_document()

    assert orchestrator.absorb_echo(document.path) is False
    orchestrator.update_now(document)

    assert orchestrator.absorb_echo(document.path) is True
    assert orchestrator.marker.state(document.path) is WriteState.IDLE


def test_created_date_is_written_once(host: InMemoryHost, clock: FrozenClock) -> None:
    settings = Settings(moment_format="YYYY-MM-DDTHH:mm", created_date_property="created")
    orchestrator = _orchestrator(host, settings, clock)
    document = make_document()

    first = orchestrator.update_now(document)
    clock.advance(hours=1)
    second = orchestrator.update_now(document)

    assert first.created_written is True
    assert first.metadata == {"modified": "2024-01-01T15:00", "created": "2023-12-24T09:30"}
    assert second.created_written is False
    assert host.metadata[document.path] == {"modified": "2024-01-01T16:00", "created": "2023-12-24T09:30"}


def test_only_update_existing_blocks_and_skips_created(host: InMemoryHost, clock: FrozenClock) -> None:
    settings = Settings(
        moment_format="YYYY-MM-DDTHH:mm",
        created_date_property="created",
        only_update_existing=True,
    )
    orchestrator = _orchestrator(host, settings, clock)
    fresh = make_document("fresh.md")
    tracked = make_document("tracked.md")
    host.metadata[tracked.path] = {"modified": "2023-01-01T00:00"}

    blocked = orchestrator.update_now(fresh)
    written = orchestrator.update_now(tracked)

    assert blocked.outcome is UpdateOutcome.BLOCKED
    assert blocked.reason is BlockReason.MISSING_FIELD
    assert written.outcome is UpdateOutcome.WRITTEN
    assert host.metadata[tracked.path] == {"modified": "2024-01-01T15:00"}


def test_history_log_via_append_field(host: InMemoryHost, settings: Settings, clock: FrozenClock) -> None:
    document = make_document()
    host.metadata[document.path] = {"append_modified_update": True, "modified": "2023-12-31T10:00"}

    result = _orchestrator(host, settings, clock).update_now(document)

    assert result.value == ["2023-12-31T10:00", "2024-01-01T15:00"]


def test_failed_write_is_reported_and_resets_marker(host: InMemoryHost, settings: Settings, clock: FrozenClock) -> None:
    orchestrator = _orchestrator(host, settings, clock)
    document = make_document()
    host.fail_with = OSError("read-only file system")

    result = orchestrator.update_now(document)

    assert result.outcome is UpdateOutcome.FAILED
    assert orchestrator.marker.state(document.path) is WriteState.IDLE

    host.fail_with = None
    assert orchestrator.update_now(document).outcome is UpdateOutcome.WRITTEN


def test_reload_settings_switches_the_tracked_field(host: InMemoryHost, settings: Settings, clock: FrozenClock) -> None:
    orchestrator = _orchestrator(host, settings, clock)
    orchestrator.reload_settings(replace(settings, frontmatter_property="updated", moment_format="YYYY-MM-DD"))

    orchestrator.update_now(make_document())

    assert host.writes[-1][1] == {"updated": "2024-01-01"}
    assert orchestrator.formatter.tz.name == "UTC"


def test_write_marker_transitions() -> None:
    marker = WriteMarker()

    marker.finish_write("a.md")
    assert marker.state("a.md") is WriteState.IDLE

    marker.begin_write("a.md")
    assert marker.state("a.md") is WriteState.PENDING_WRITE
    marker.finish_write("a.md")
    assert marker.state("a.md") is WriteState.AWAITING_ECHO
    assert marker.consume_echo("a.md") is True
    assert marker.consume_echo("a.md") is False


def test_scalar_value_turns_into_a_single_entry_log_on_the_same_day(
    host: InMemoryHost,
    settings: Settings,
    clock: FrozenClock,
) -> None:
    document = make_document()
    host.metadata[document.path] = {"modified": "2024-01-01T09:00"}

    result = _orchestrator(host, replace(settings, store_history_log=True), clock).update_now(document)

    assert result.value == ["2024-01-01T15:00"]
    assert host.metadata[document.path] == {"modified": ["2024-01-01T15:00"]}
