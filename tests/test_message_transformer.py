"""Tests for turning log records into routing key + payload."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from amqp_log_stream.common.errors import MalformedRecordError, ReshapeError
from amqp_log_stream.logic.message_transformer import (
    DROP,
    MessageTransformer,
    OutboundMessage,
    to_iso_timestamp,
)

T = datetime(2024, 1, 15, 8, 23, 45, 123456, tzinfo=timezone.utc)


def _transformer(**overrides):
    options = dict(server="h", application="a", pid=1, tags=["app"])
    options.update(overrides)
    return MessageTransformer(**options)


def _record(**extra):
    rec = {"time": T, "msg": "m", "level": 30, "v": 0}
    rec.update(extra)
    return rec


class TestFieldTransformation:
    def test_canonical_document(self):
        message = _transformer().transform(_record(extra="x"))
        assert isinstance(message, OutboundMessage)
        assert message.routing_key == "info"

        doc = json.loads(message.payload.decode("utf-8"))
        assert doc["message"] == "m"
        assert doc["level"] == "info"
        assert doc["source"] == "h/a"
        assert doc["tags"] == ["app"]
        assert doc["pid"] == 1
        assert doc["extra"] == "x"
        assert doc["timestamp"] == "2024-01-15T08:23:45.123Z"
        for field in ("time", "v", "msg"):
            assert field not in doc

    def test_pid_is_overwritten(self):
        doc = json.loads(_transformer().transform(_record(pid=9999)).payload)
        assert doc["pid"] == 1

    def test_type_only_when_configured(self):
        doc = json.loads(_transformer().transform(_record()).payload)
        assert "type" not in doc
        doc = json.loads(_transformer(type="applog").transform(_record()).payload)
        assert doc["type"] == "applog"

    def test_unknown_level_passes_through(self):
        message = _transformer().transform(_record(level=35))
        assert message.routing_key == "35"
        assert json.loads(message.payload)["level"] == 35

    def test_configured_routing_key_wins(self):
        message = _transformer(routing_key="logs.app").transform(_record(level=50))
        assert message.routing_key == "logs.app"
        assert json.loads(message.payload)["level"] == "error"

    def test_nested_pass_through_fields(self):
        nested = {"req": {"headers": {"a": [1, 2, {"b": None}]}, "when": T}}
        doc = json.loads(_transformer().transform(_record(**nested)).payload)
        assert doc["req"]["headers"] == {"a": [1, 2, {"b": None}]}
        assert doc["req"]["when"] == T.isoformat()

    def test_does_not_mutate_record(self):
        record = _record(ctx={"user": "u"})
        snapshot = json.loads(json.dumps(record, default=str))
        _transformer(message_formatter=lambda doc: doc["ctx"].update(x=1) or doc).transform(record)
        assert json.loads(json.dumps(record, default=str)) == snapshot
        assert record["time"] == T

    def test_tags_are_copied_per_message(self):
        transformer = _transformer(message_formatter=lambda doc: doc["tags"].append("x") or doc)
        transformer.transform(_record())
        assert transformer.tags == ["app"]


class TestTimestamps:
    def test_iso_string_with_z(self):
        assert to_iso_timestamp("2024-01-15T08:23:45.123Z") == "2024-01-15T08:23:45.123Z"

    def test_offset_is_normalised_to_utc(self):
        moment = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_iso_timestamp(moment) == "2024-01-15T08:00:00.000Z"

    def test_naive_datetime_treated_as_utc(self):
        assert to_iso_timestamp(datetime(2024, 1, 15, 8, 0, 0)) == "2024-01-15T08:00:00.000Z"

    def test_epoch_seconds(self):
        assert to_iso_timestamp(0) == "1970-01-01T00:00:00.000Z"

    def test_unparsable(self):
        with pytest.raises(MalformedRecordError):
            to_iso_timestamp("yesterday")
        with pytest.raises(MalformedRecordError):
            to_iso_timestamp(None)


class TestMalformedRecords:
    def test_missing_time(self):
        record = _record()
        del record["time"]
        with pytest.raises(MalformedRecordError):
            _transformer().transform(record)

    def test_missing_msg(self):
        record = _record()
        del record["msg"]
        with pytest.raises(MalformedRecordError):
            _transformer().transform(record)

    def test_cyclic_structure(self):
        loop = {}
        loop["self"] = loop
        with pytest.raises(MalformedRecordError):
            _transformer().transform(_record(loop=loop))

    def test_unserializable_value(self):
        with pytest.raises(MalformedRecordError):
            _transformer().transform(_record(obj=object()))


class TestMessageFormatter:
    def test_replacement_document(self):
        transformer = _transformer(message_formatter=lambda doc: {"text": doc["message"], "lvl": doc["level"]})
        message = transformer.transform(_record())
        assert json.loads(message.payload) == {"text": "m", "lvl": "info"}
        assert message.routing_key == "info"

    def test_formatter_sees_merged_document(self):
        seen = []
        _transformer(message_formatter=lambda doc: seen.append(dict(doc)) or doc).transform(_record(extra="x"))
        assert seen[0]["extra"] == "x"
        assert seen[0]["pid"] == 1
        assert "time" not in seen[0]

    def test_drop(self):
        assert _transformer(message_formatter=lambda doc: DROP).transform(_record()) is DROP

    def test_none_is_not_a_drop(self):
        with pytest.raises(ReshapeError):
            _transformer(message_formatter=lambda doc: None).transform(_record())

    def test_formatter_exception_propagates(self):
        def boom(doc):
            raise KeyError("missing")

        with pytest.raises(KeyError):
            _transformer(message_formatter=boom).transform(_record())
