"""
Build a SyncConfiguration from a JSON file or command-line options.

JSON layout:

    {
        "name": "Work mirror",
        "targetCalendarID": "...",
        "sourceCalendarIDs": ["...", "..."],
        "syncMode": "busy-only",
        "includeDetails": false
    }

Only targetCalendarID and sourceCalendarIDs are required.
"""

import json
from pathlib import Path

from calverge.models import InvalidConfiguration
from calverge.models import SyncConfiguration
from calverge.models import SyncMode


def parse_sync_mode(value: str) -> SyncMode:
    try:
        return SyncMode(value)
    except ValueError:
        valid = ", ".join(m.value for m in SyncMode)
        raise InvalidConfiguration(
            f"invalid sync mode '{value}'. Valid options: {valid}"
        ) from None


def check_name(name: str | None) -> None:
    """Names are written into every synced event's tag and must be one line."""
    if name is not None and ("\n" in name or "\r" in name):
        raise InvalidConfiguration("name must not contain line breaks")


def split_calendar_ids(value: str) -> tuple[str, ...]:
    """Split a comma-separated id list, trimming whitespace and dropping blanks."""
    return tuple(part.strip() for part in value.split(",") if part.strip())


def config_from_dict(data: dict, dry_run: bool = False) -> SyncConfiguration:
    if not isinstance(data, dict):
        raise InvalidConfiguration("top-level JSON value must be an object")

    target = data.get("targetCalendarID")
    if not isinstance(target, str) or not target.strip():
        raise InvalidConfiguration("'targetCalendarID' must be a non-empty string")

    sources = data.get("sourceCalendarIDs")
    if not isinstance(sources, list) or not all(isinstance(s, str) for s in sources):
        raise InvalidConfiguration("'sourceCalendarIDs' must be a list of strings")
    if not sources:
        raise InvalidConfiguration("'sourceCalendarIDs' must not be empty")

    name = data.get("name")
    if name is not None and not isinstance(name, str):
        raise InvalidConfiguration("'name' must be a string")
    check_name(name)

    mode = data.get("syncMode", SyncMode.FULL.value)
    if not isinstance(mode, str):
        raise InvalidConfiguration("'syncMode' must be a string")

    include_details = data.get("includeDetails", True)
    if not isinstance(include_details, bool):
        raise InvalidConfiguration("'includeDetails' must be true or false")

    return SyncConfiguration(
        target_calendar_id=target.strip(),
        source_calendar_ids=tuple(s.strip() for s in sources),
        name=name,
        sync_mode=parse_sync_mode(mode),
        include_details=include_details,
        dry_run=dry_run,
    )


def load_config_file(config_path: Path, dry_run: bool = False) -> SyncConfiguration:
    if not config_path.exists():
        raise InvalidConfiguration(f"config file not found at '{config_path}'")
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise InvalidConfiguration(f"invalid JSON in '{config_path}': {e}") from None
    except OSError as e:
        raise InvalidConfiguration(f"cannot read '{config_path}': {e}") from None
    return config_from_dict(data, dry_run=dry_run)


def config_from_options(
    target: str,
    sources: str,
    mode: str = SyncMode.FULL.value,
    include_details: bool = True,
    name: str | None = None,
    dry_run: bool = False,
) -> SyncConfiguration:
    source_ids = split_calendar_ids(sources)
    check_name(name)
    if not target.strip():
        raise InvalidConfiguration("target calendar id must not be empty")
    if not source_ids:
        raise InvalidConfiguration("at least one source calendar id is required")
    return SyncConfiguration(
        target_calendar_id=target.strip(),
        source_calendar_ids=source_ids,
        name=name,
        sync_mode=parse_sync_mode(mode),
        include_details=include_details,
        dry_run=dry_run,
    )
