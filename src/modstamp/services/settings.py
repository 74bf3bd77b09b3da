"""Settings dataclass and JSON persistence helpers."""

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Literal, Mapping

__all__ = [
    "Settings",
    "SettingsStore",
    "FREQUENCY_CHOICES",
    "DEFAULT_FREQUENCY",
    "coerce_settings",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".modstamp"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "MODSTAMP_PROPERTY": "frontmatter_property",
    "MODSTAMP_CREATED_PROPERTY": "created_date_property",
    "MODSTAMP_FORMAT": "moment_format",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "MODSTAMP_DEBUG_LOGGING": "debug_logging",
    "MODSTAMP_HISTORY": "store_history_log",
    "MODSTAMP_ONLY_EXISTING": "only_update_existing",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "MODSTAMP_TIMEOUT": "timeout",
    "MODSTAMP_POLL_INTERVAL": "poll_interval",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}

# camelCase keys used by the editor plugin's data.json.
_LEGACY_KEYS: Mapping[str, str] = {
    "frontmatterProperty": "frontmatter_property",
    "createdDateProperty": "created_date_property",
    "momentFormat": "moment_format",
    "storeHistoryLog": "store_history_log",
    "historyNewestFirst": "history_newest_first",
    "historyMaxItems": "history_max_items",
    "excludedFolders": "excluded_folders",
    "excludeField": "exclude_field",
    "appendField": "append_field",
    "appendMaximumFrequency": "append_maximum_frequency",
    "onlyUpdateExisting": "only_update_existing",
    "useKeyupEvents": "use_keyup_events",
    "timeout": "timeout",
}

Frequency = Literal["minute", "hour", "day", "week", "month", "quarter", "year"]
FREQUENCY_CHOICES: tuple[str, ...] = ("minute", "hour", "day", "week", "month", "quarter", "year")
DEFAULT_FREQUENCY: Frequency = "day"


@dataclass(slots=True)
class Settings:
    """User-configurable options for the timestamp updater."""

    frontmatter_property: str = "modified"
    created_date_property: str = ""
    moment_format: str = ""
    store_history_log: bool = False
    history_newest_first: bool = False
    history_max_items: int = 0
    excluded_folders: list[str] = field(default_factory=list)
    exclude_field: str = "exclude_modified_update"
    append_field: str = "append_modified_update"
    append_maximum_frequency: Frequency = DEFAULT_FREQUENCY
    only_update_existing: bool = False
    use_keyup_events: bool = False
    timeout: float = 10.0
    debug_logging: bool = False
    poll_interval: float = 1.0


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, applying CLI/environment overrides when present.

        Missing keys keep their defaults and malformed values are replaced by
        the default for that field, so loading never raises for bad payloads.
        """

        payload = self._read_payload()
        settings = Settings()
        needs_migration = False

        if payload:
            data, migrated = _migrate_legacy_keys(payload)
            needs_migration = migrated
            settings = coerce_settings(_filter_fields(data))

        version_mismatch = bool(payload) and payload.get("version") != _SETTINGS_VERSION
        if needs_migration or version_mismatch:
            try:
                self.save(settings)
            except OSError as exc:  # pragma: no cover - read-only config dirs
                LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")

        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with atomic file writes."""

        payload = asdict(settings)
        payload["version"] = _SETTINGS_VERSION
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            loaded = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(loaded, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return loaded

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {field.name for field in fields(Settings)}
        filtered: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in allowed or value is None:
                continue
            filtered[key] = value
        if not filtered:
            return settings
        LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
        merged = asdict(settings)
        merged.update(filtered)
        return coerce_settings(merged)

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def coerce_settings(data: Mapping[str, Any]) -> Settings:
    """Build :class:`Settings` from ``data``, replacing malformed values with defaults."""

    defaults = Settings()
    values: Dict[str, Any] = {}
    for definition in fields(Settings):
        if definition.name not in data:
            continue
        raw = data[definition.name]
        default = getattr(defaults, definition.name)
        values[definition.name] = _coerce_field(definition.name, raw, default)
    return replace(defaults, **values)


def _coerce_field(name: str, raw: Any, default: Any) -> Any:
    if name == "excluded_folders":
        return _coerce_folders(raw)
    if name == "append_maximum_frequency":
        normalized = str(raw or "").strip().lower()
        if normalized in FREQUENCY_CHOICES:
            return normalized
        LOGGER.warning("Unknown append_maximum_frequency %r; using %s", raw, DEFAULT_FREQUENCY)
        return DEFAULT_FREQUENCY
    if name == "history_max_items":
        number = _to_int(raw)
        return number if number is not None and number > 0 else 0
    if name in {"timeout", "poll_interval"}:
        number = _to_float(raw)
        if number is None or number <= 0:
            LOGGER.warning("Invalid %s %r; using %s", name, raw, default)
            return default
        return number
    if isinstance(default, bool):
        return _to_bool(raw, default)
    if isinstance(default, str):
        return raw if isinstance(raw, str) else default
    return raw


def _coerce_folders(raw: Any) -> list[str]:
    if isinstance(raw, str):
        items = raw.split("\n")
    elif isinstance(raw, (list, tuple)):
        items = [item for item in raw if isinstance(item, str)]
    else:
        if raw is not None:
            LOGGER.warning("Ignoring excluded_folders payload of type %s", type(raw).__name__)
        return []
    return [item.strip().strip("/") for item in items if item and item.strip().strip("/")]


def _to_bool(raw: Any, default: bool) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    if isinstance(raw, (int, float)):
        return bool(raw)
    return default


def _to_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip(), 10)
    except (TypeError, ValueError):
        return None


def _to_float(raw: Any) -> float | None:
    if isinstance(raw, bool):
        return None
    try:
        number = float(raw)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _migrate_legacy_keys(payload: Mapping[str, Any]) -> tuple[Dict[str, Any], bool]:
    data: Dict[str, Any] = {}
    migrated = False
    for key, value in payload.items():
        target = _LEGACY_KEYS.get(key)
        if target is not None and target != key:
            migrated = True
            data.setdefault(target, value)
        else:
            data[key] = value
    return data, migrated


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {field.name for field in fields(Settings)}
    return {key: value for key, value in payload.items() if key in allowed}
