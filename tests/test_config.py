"""
Tests for building SyncConfiguration from JSON files and CLI options.
"""

import json
from pathlib import Path

import pytest

from calverge.config import config_from_dict
from calverge.config import config_from_options
from calverge.config import load_config_file
from calverge.config import split_calendar_ids
from calverge.models import InvalidConfiguration
from calverge.models import SyncMode


def _write(tmp_path, data) -> Path:
    path = tmp_path / "sync-config.json"
    path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
    return path


class TestLoadConfigFile:
    def test_full_file(self, tmp_path):
        path = _write(
            tmp_path,
            {
                "name": "Work mirror",
                "targetCalendarID": "personal",
                "sourceCalendarIDs": ["work", "team"],
                "syncMode": "busy-only",
                "includeDetails": False,
            },
        )
        config = load_config_file(path, dry_run=True)
        assert config.name == "Work mirror"
        assert config.target_calendar_id == "personal"
        assert config.source_calendar_ids == ("work", "team")
        assert config.sync_mode is SyncMode.BUSY_ONLY
        assert config.include_details is False
        assert config.dry_run is True

    def test_defaults(self, tmp_path):
        path = _write(tmp_path, {"targetCalendarID": "personal", "sourceCalendarIDs": ["work"]})
        config = load_config_file(path)
        assert config.name is None
        assert config.display_name == "Unnamed Sync"
        assert config.sync_mode is SyncMode.FULL
        assert config.include_details is True
        assert config.dry_run is False

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidConfiguration, match="not found"):
            load_config_file(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        with pytest.raises(InvalidConfiguration, match="invalid JSON"):
            load_config_file(_write(tmp_path, "{not json"))


class TestConfigFromDict:
    @pytest.mark.parametrize(
        "data",
        [
            [],
            {"sourceCalendarIDs": ["work"]},
            {"targetCalendarID": "", "sourceCalendarIDs": ["work"]},
            {"targetCalendarID": "personal"},
            {"targetCalendarID": "personal", "sourceCalendarIDs": []},
            {"targetCalendarID": "personal", "sourceCalendarIDs": "work"},
            {"targetCalendarID": "personal", "sourceCalendarIDs": ["work"], "name": 3},
            {"targetCalendarID": "personal", "sourceCalendarIDs": ["work"], "syncMode": "shadow"},
            {"targetCalendarID": "personal", "sourceCalendarIDs": ["work"], "includeDetails": "no"},
        ],
    )
    def test_rejected(self, data):
        with pytest.raises(InvalidConfiguration):
            config_from_dict(data)

    def test_invalid_mode_lists_valid_options(self):
        data = {"targetCalendarID": "personal", "sourceCalendarIDs": ["w"], "syncMode": "x"}
        with pytest.raises(InvalidConfiguration, match="full, busy-only"):
            config_from_dict(data)


class TestConfigFromOptions:
    def test_splits_and_trims_sources(self):
        config = config_from_options("personal", " work , team,,")
        assert config.source_calendar_ids == ("work", "team")
        assert config.sync_mode is SyncMode.FULL
        assert config.include_details is True

    def test_mode_and_details(self):
        config = config_from_options(
            "personal", "work", mode="busy-only", include_details=False, name="Mirror"
        )
        assert config.sync_mode is SyncMode.BUSY_ONLY
        assert config.include_details is False
        assert config.display_name == "Mirror"

    def test_blank_sources_rejected(self):
        with pytest.raises(InvalidConfiguration):
            config_from_options("personal", " , ")

    def test_blank_target_rejected(self):
        with pytest.raises(InvalidConfiguration):
            config_from_options("  ", "work")


def test_split_calendar_ids_keeps_order():
    assert split_calendar_ids("b,a,c") == ("b", "a", "c")


@pytest.mark.parametrize("name", ["Work\nSource: other", "Work\rmirror"])
def test_multiline_name_rejected(tmp_path, name):
    data = {"targetCalendarID": "personal", "sourceCalendarIDs": ["work"], "name": name}
    with pytest.raises(InvalidConfiguration, match="line breaks"):
        load_config_file(_write(tmp_path, data))
    with pytest.raises(InvalidConfiguration, match="line breaks"):
        config_from_options("personal", "work", name=name)
