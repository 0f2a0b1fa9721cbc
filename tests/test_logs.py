import json

import pytest

from flowgraph.core.logs import LogEntry, LogPage, parse_entries, parse_payload, parse_timestamp


class TestParsePayload:
    def test_json_text(self):
        assert parse_payload('{"output": "x"}') == ({"output": "x"}, False)

    def test_decoded_object_passes_through(self):
        assert parse_payload({"input": 1}) == ({"input": 1}, False)

    def test_malformed_text_is_kept(self):
        value, malformed = parse_payload("{not json")
        assert value == "{not json"
        assert malformed is True

    def test_blank(self):
        assert parse_payload("   ") == (None, False)
        assert parse_payload(None) == (None, False)


class TestParseTimestamp:
    def test_numbers_are_epoch_ms(self):
        assert parse_timestamp(1500) == 1500.0

    def test_iso_strings(self):
        assert parse_timestamp("1970-01-01T00:00:01Z") == 1000.0
        assert parse_timestamp("1970-01-01T00:00:01+00:00") == 1000.0
        assert parse_timestamp("1970-01-01T00:00:01") == 1000.0

    def test_iso_and_numbers_compare(self):
        assert parse_timestamp("2024-01-01T10:00:00Z") < parse_timestamp("2024-01-01T10:00:00.500Z")

    def test_non_finite(self):
        assert parse_timestamp(float("nan")) is None
        assert parse_timestamp(float("inf")) is None
        assert parse_timestamp("nan") is None
        assert parse_timestamp("-inf") is None

    def test_garbage(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp(True) is None


class TestLogEntry:
    def test_from_dict_accepts_node_type_alias(self):
        entry = LogEntry.from_dict({
            "id": "l1",
            "timestamp": "2024-01-01T10:00:00Z",
            "level": "info",
            "nodeId": "n1",
            "nodeType": "aiNode",
            "message": "Node executed",
            "payload": json.dumps({"input": {"a": 1}, "output": "ok", "prompt": "hi"}),
        })
        assert entry.node_kind == "aiNode"
        assert entry.payload_field("prompt") == "hi"
        assert entry.has_io
        assert not entry.payload_malformed

    def test_io_detection(self):
        assert not LogEntry(id="1", timestamp=1, payload={"other": 1}).has_io
        assert LogEntry(id="2", timestamp=1, payload={"output": 0}).has_io
        assert not LogEntry(id="3", timestamp=1, payload="opaque").has_io

    def test_malformed_payload_flagged(self):
        entry = LogEntry.from_dict({"id": "x", "timestamp": 1, "payload": "<html>"})
        assert entry.payload == "<html>"
        assert entry.payload_malformed

    def test_generated_id_depends_on_content(self):
        first = LogEntry.from_dict({"timestamp": 1, "message": "a"})
        assert first.id.startswith("log-")
        assert LogEntry.from_dict({"message": "a", "timestamp": 1}).id == first.id
        assert LogEntry.from_dict({"timestamp": 1, "message": "b"}).id != first.id

    def test_non_string_fields_become_text(self):
        entry = LogEntry.from_dict({"id": 7, "nodeId": 5, "nodeType": 3, "message": 42, "level": None})
        assert (entry.id, entry.node_id, entry.node_kind, entry.message) == ("7", "5", "3", "42")
        assert entry.level == "info"

    def test_zero_node_id_is_kept(self):
        assert LogEntry.from_dict({"nodeId": 0}).node_id == "0"


class TestLogPage:
    def test_from_query_result(self):
        page = LogPage.from_dict({
            "data": [{"id": "a", "timestamp": 1}, {"id": "b", "timestamp": 2}],
            "total": 250,
            "page": 1,
            "limit": 100,
        })
        assert [e.id for e in page.data] == ["a", "b"]
        assert page.total == 250
        assert page.has_more

    def test_from_bare_list(self):
        page = LogPage.from_dict([{"id": "a", "timestamp": 1}])
        assert page.total == 1
        assert not page.has_more

    def test_from_json(self):
        page = LogPage.from_json('{"data": [], "total": 0, "page": 1, "limit": 100}')
        assert page.data == []

    def test_non_object_items_are_skipped(self):
        page = LogPage.from_dict({"data": [None, 3, "text", {"id": "a", "timestamp": 1}], "total": 4})
        assert [e.id for e in page.data] == ["a"]
        assert page.total == 4

    def test_unusable_counters_fall_back(self):
        page = LogPage.from_dict({"data": "oops", "total": None, "page": "two", "limit": True})
        assert page.data == []
        assert (page.total, page.page, page.limit) == (0, 1, 0)

    def test_non_page_document(self):
        with pytest.raises(ValueError):
            LogPage.from_dict(42)


def test_parse_entries_keeps_log_entries():
    entry = LogEntry(id="x", timestamp=1)
    assert parse_entries([entry, None, {"id": "y"}]) == [entry, LogEntry.from_dict({"id": "y"})]
