"""Command line entry point: stamp documents or watch a Markdown vault."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence, TextIO

from .core.orchestrator import UpdateOrchestrator, UpdateOutcome, UpdateResult
from .core.scheduler import DebounceScheduler
from .editor.events import EditEventBus, EditNotificationSource
from .services.settings import FREQUENCY_CHOICES, Settings, SettingsStore
from .services.vault import MarkdownVault, VaultWatcher
from .utils.logging import setup_logging

LOGGER = logging.getLogger(__name__)
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    setup_logging(logging.DEBUG if debug else logging.INFO, force=force)


def load_settings(store: SettingsStore, overrides: Mapping[str, Any] | None = None) -> Settings:
    """Load persisted settings, falling back to defaults when the file is unreadable."""

    try:
        return store.load(overrides=overrides)
    except OSError as exc:
        LOGGER.warning("Failed to load settings from %s: %s", store.path, exc)
        return Settings()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``modstamp`` console script."""

    args = _build_parser().parse_args(argv)
    debug = args.debug or os.environ.get("MODSTAMP_DEBUG", "").strip().lower() in _TRUE_VALUES
    configure_logging(debug)

    try:
        overrides = _parse_overrides(args.overrides)
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    settings_path = args.settings_path or os.environ.get("MODSTAMP_SETTINGS_PATH")
    store = SettingsStore(Path(settings_path).expanduser() if settings_path else None)
    settings = load_settings(store, overrides or None)

    if args.dump_settings:
        _dump_settings(settings, store, overrides=overrides)
        return 0
    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    if args.vault is None:
        print("A vault directory is required unless --dump-settings is given.", file=sys.stderr)
        return 2
    try:
        vault = MarkdownVault(args.vault)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    if args.stamp:
        return stamp_documents(vault, settings, args.stamp)
    try:
        asyncio.run(watch_vault(vault, settings))
    except KeyboardInterrupt:
        LOGGER.info("Stopped watching %s", vault.root)
    return 0


def stamp_documents(vault: MarkdownVault, settings: Settings, paths: Sequence[str]) -> int:
    """Update the given documents immediately, skipping the debounce window."""

    orchestrator = UpdateOrchestrator(vault, settings)
    failures = 0
    for raw_path in paths:
        try:
            document = vault.document(raw_path)
        except ValueError as exc:
            print(str(exc), file=sys.stderr)
            failures += 1
            continue
        result = orchestrator.update_now(document)
        print(_describe_result(result))
        if result.outcome is UpdateOutcome.FAILED:
            failures += 1
    return 1 if failures else 0


async def watch_vault(
    vault: MarkdownVault,
    settings: Settings,
    *,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Watch ``vault`` and stamp documents once their edits settle."""

    source_settings = settings
    if settings.use_keyup_events:
        # Polling sees file changes, never keystrokes.
        LOGGER.warning(
            "use_keyup_events needs an editor; the vault watcher stamps every changed file instead"
        )
        source_settings = replace(settings, use_keyup_events=False)

    bus = EditEventBus()
    scheduler = DebounceScheduler(loop=asyncio.get_running_loop())
    orchestrator = UpdateOrchestrator(vault, settings, scheduler=scheduler)
    source = EditNotificationSource(
        bus=bus,
        orchestrator=orchestrator,
        settings=source_settings,
        resolve_document=vault.resolve,
    )
    watcher = VaultWatcher(vault, bus, interval=settings.poll_interval)
    source.attach()
    watcher.start()
    LOGGER.info("Watching %s (timeout=%ss)", vault.root, settings.timeout)
    try:
        await (stop_event or asyncio.Event()).wait()
    finally:
        await watcher.aclose()
        await scheduler.aclose()
        source.detach()


def _describe_result(result: UpdateResult) -> str:
    detail = result.outcome.value
    if result.reason is not None:
        detail = f"{detail} ({result.reason.value})"
    elif result.value is not None:
        detail = f"{detail}: {result.value}"
    return f"{result.document_id}: {detail}"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="modstamp",
        description="Keep a 'modified' timestamp in the frontmatter of Markdown notes.",
    )
    parser.add_argument("vault", nargs="?", help="Folder of Markdown documents to manage.")
    parser.add_argument(
        "--stamp",
        metavar="PATH",
        action="append",
        default=[],
        help="Update PATH immediately instead of watching (repeatable).",
    )
    parser.add_argument("--dump-settings", action="store_true", help="Print the effective settings and exit.")
    parser.add_argument("--settings-path", metavar="PATH", help="Use PATH instead of ~/.modstamp/settings.json.")
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override a setting for this run (repeatable).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser


def _parse_overrides(items: Sequence[str]) -> Dict[str, Any]:
    """Turn ``KEY=VALUE`` strings into typed settings values, judged by each field's default."""

    defaults = asdict(Settings())
    overrides: Dict[str, Any] = {}
    for entry in items:
        key, separator, raw = entry.partition("=")
        key, raw = key.strip(), raw.strip()
        if not separator or not key:
            raise ValueError(f"expected KEY=VALUE, got {entry!r}")
        if key not in defaults:
            raise ValueError(f"unknown setting {key!r}")
        default = defaults[key]
        if isinstance(default, bool):
            overrides[key] = _parse_bool(raw)
        elif isinstance(default, int):
            overrides[key] = int(raw, 10)
        elif isinstance(default, float):
            overrides[key] = float(raw)
        elif isinstance(default, list):
            overrides[key] = _parse_list(raw)
        elif key == "append_maximum_frequency" and raw not in FREQUENCY_CHOICES:
            raise ValueError(f"append_maximum_frequency must be one of {', '.join(FREQUENCY_CHOICES)}")
        else:
            overrides[key] = raw
    return overrides


def _parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{value!r} is not a boolean")


def _parse_list(value: str) -> list[str]:
    # JSON arrays for folder names containing commas, comma lists otherwise.
    if value.startswith("["):
        try:
            loaded = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValueError("list overrides must be valid JSON arrays") from exc
        if not isinstance(loaded, list):
            raise ValueError("list overrides must be valid JSON arrays")
        return [str(item) for item in loaded]
    return [item.strip() for item in value.split(",") if item.strip()]


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    payload = {
        "settings": asdict(settings),
        "meta": {
            "path": str(store.path),
            "cli_overrides": sorted(overrides),
            "environment_variables": sorted(name for name in os.environ if name.startswith("MODSTAMP_")),
        },
    }
    print(json.dumps(payload, indent=2), file=stream or sys.stdout)
