"""Tests for hashing, serialization and timestamp helpers."""

import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel

from waypoint.core.hashing import canonical_json, compute_digest, compute_hash
from waypoint.core.serialization import to_jsonable
from waypoint.core.timestamps import from_iso8601, generate_run_id, to_iso8601, utc_now


class TestComputeHash:
    def test_deterministic(self):
        assert compute_hash("a", "b") == compute_hash("a", "b")

    def test_order_matters(self):
        assert compute_hash("a", "b") != compute_hash("b", "a")

    def test_length(self):
        assert len(compute_hash("x")) == 32
        assert len(compute_hash("x", length=16)) == 16


class TestCanonicalJson:
    def test_key_order_independent(self):
        assert canonical_json({"b": 1, "a": 2}) == canonical_json({"a": 2, "b": 1})
        assert canonical_json({"b": 1, "a": 2}) == '{"a":2,"b":1}'

    def test_digest_key_order_independent(self):
        assert compute_digest({"topic": "rust", "depth": "deep"}) == compute_digest(
            {"depth": "deep", "topic": "rust"}
        )
        assert len(compute_digest({"x": 1})) == 16

    def test_digest_differs_for_different_input(self):
        assert compute_digest({"topic": "rust"}) != compute_digest({"topic": "go"})


class Color(Enum):
    RED = "red"


@dataclass
class Point:
    x: int
    when: datetime


class Model(BaseModel):
    name: str
    tags: list[str] = []


class TestToJsonable:
    def test_primitives_pass_through(self):
        assert to_jsonable(None) is None
        assert to_jsonable(3) == 3
        assert to_jsonable("s") == "s"

    def test_nested_structures(self):
        when = datetime(2025, 1, 1, tzinfo=UTC)
        value = {
            "color": Color.RED,
            "point": Point(x=1, when=when),
            "model": Model(name="m", tags=["a"]),
            "items": (1, 2),
            "path": Path("a/b"),
        }
        assert to_jsonable(value) == {
            "color": "red",
            "point": {"x": 1, "when": "2025-01-01T00:00:00+00:00"},
            "model": {"name": "m", "tags": ["a"]},
            "items": [1, 2],
            "path": "a/b",
        }

    def test_unknown_objects_become_strings(self):
        assert to_jsonable(object()).startswith("<object object")


class TestTimestamps:
    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo is not None

    def test_run_id_format(self):
        run_id = generate_run_id()
        assert re.fullmatch(r"run_\d{13}_[a-z0-9]{6}", run_id)
        assert generate_run_id() != run_id

    def test_iso_round_trip(self):
        now = utc_now()
        assert from_iso8601(to_iso8601(now)) == now

    def test_none_handling(self):
        assert to_iso8601(None) is None
        assert from_iso8601(None) is None
        assert from_iso8601("") is None

    def test_z_suffix_and_naive(self):
        assert from_iso8601("2025-01-01T06:00:00.000Z") == datetime(2025, 1, 1, 6, tzinfo=UTC)
        assert from_iso8601("2025-01-01T06:00:00").tzinfo is UTC

    def test_offset_preserved_as_same_instant(self):
        tz = timezone(timedelta(hours=9))
        parsed = from_iso8601("2025-01-01T15:00:00+09:00")
        assert parsed == datetime(2025, 1, 1, 15, tzinfo=tz)
