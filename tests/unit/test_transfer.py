"""Tests for settings export and import."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from hostbridge import transfer
from hostbridge.models.transfer import ExportData


class TestDump:
    def test_copies_store_contents(self):
        source = {"lyrics": {"enabled": True}}
        data = transfer.dump(source, {"beta": False})
        source["lyrics"]["enabled"] = False
        assert data.stores == {"lyrics": {"enabled": True}}
        assert data.feature_flags == {"beta": False}
        assert data.version == 1

    def test_json_contains_no_trust_entries(self):
        payload = json.loads(transfer.dump({"a": {"x": 1}}).model_dump_json())
        assert set(payload) == {"version", "timestamp", "stores", "feature_flags"}


class TestRestore:
    def test_replaces_present_stores_only(self):
        data = ExportData(stores={"a": {"x": 2}})
        stores = {"a": {"x": 1, "stale": True}, "b": {"y": 1}}
        assert transfer.restore(data, stores) == ["a"]
        assert stores == {"a": {"x": 2}, "b": {"y": 1}}

    def test_load_from_json(self):
        text = transfer.dump({"a": {"x": 1}}).model_dump_json()
        assert transfer.load(text).stores == {"a": {"x": 1}}


class TestValidate:
    def test_accepts_dict_and_json(self):
        data = transfer.dump({"a": {}})
        assert transfer.validate(data.model_dump(mode="json")) is True
        assert transfer.validate(data.model_dump_json()) is True

    @pytest.mark.parametrize(
        "raw",
        [
            {"version": 2, "timestamp": "2024-01-01T00:00:00Z", "stores": {}},
            {"version": 1, "stores": {"a": "not a mapping"}},
            "not json",
            [],
        ],
    )
    def test_rejects_invalid(self, raw):
        assert transfer.validate(raw) is False

    def test_load_raises_on_invalid(self):
        with pytest.raises(ValidationError):
            transfer.load('{"version": 9}')
