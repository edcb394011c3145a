"""Response envelope construction.

Turns domain data from the store into a ``ResponseEnvelope`` that can be
written to the client and cached as-is. Each output format is a small
builder with the same ``build(data)`` contract; ``prepare_response`` picks
one by ``OutputFormat``. Builders are pure: no I/O, inputs left untouched.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from enum import StrEnum
from typing import Any, Protocol

import geojson
import topojson

from cognicity.models.response import ResponseEnvelope

JSON_MEDIA_TYPE = "application/json"
# TopoJSON has no registered media type; clients expect plain JSON.
TOPOJSON_MEDIA_TYPE = "application/json"

TOPOLOGY_OBJECT_NAME = "collection"


class OutputFormat(StrEnum):
    JSON = "json"
    TOPOJSON = "topojson"

    @classmethod
    def from_query(cls, value: str | None) -> OutputFormat:
        """Map the ``format`` query parameter to a variant; unknown values mean JSON."""
        if value == cls.TOPOJSON:
            return cls.TOPOJSON
        return cls.JSON


class ResponseBuilder(Protocol):
    def build(self, data: Any) -> ResponseEnvelope: ...


def _serialise(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def is_feature_collection(data: Any) -> bool:
    """True for a GeoJSON-shaped mapping with at least one feature."""
    if not isinstance(data, Mapping):
        return False
    features = data.get("features")
    return isinstance(features, list) and len(features) > 0


class JsonBuilder:
    """Plain JSON, or an empty 204 when there is nothing to return."""

    def build(self, data: Any) -> ResponseEnvelope:
        if data is None:
            return ResponseEnvelope(status_code=204, headers={}, body=None)
        return ResponseEnvelope(
            status_code=200,
            headers={"Content-Type": JSON_MEDIA_TYPE},
            body=_serialise(data),
        )


class TopoJsonBuilder:
    """TopoJSON topology for feature collections; anything else falls back to JSON."""

    def __init__(self, fallback: ResponseBuilder | None = None) -> None:
        self._fallback = fallback or JsonBuilder()

    def build(self, data: Any) -> ResponseEnvelope:
        if not is_feature_collection(data):
            return self._fallback.build(data)
        return ResponseEnvelope(
            status_code=200,
            headers={"Content-Type": TOPOJSON_MEDIA_TYPE},
            body=to_topojson(data),
        )


def to_topojson(collection: Mapping[str, Any]) -> str:
    """Convert a GeoJSON FeatureCollection to a serialised TopoJSON topology.

    Feature properties are carried onto the topology's geometries. The input
    is round-tripped through ``geojson`` first, so the caller's mapping is
    never handed to the converter.
    """
    features = geojson.loads(_serialise(collection))
    topology = topojson.Topology(
        features,
        object_name=TOPOLOGY_OBJECT_NAME,
        prequantize=False,
    )
    return topology.to_json()


_BUILDERS: dict[OutputFormat, ResponseBuilder] = {
    OutputFormat.JSON: JsonBuilder(),
    OutputFormat.TOPOJSON: TopoJsonBuilder(),
}


def prepare_response(data: Any, output_format: OutputFormat | None = None) -> ResponseEnvelope:
    """Build the envelope for ``data`` in the requested format (JSON by default)."""
    return _BUILDERS[output_format or OutputFormat.JSON].build(data)
