"""
Record types for BookOfQuests stop dumps.

A dump is a JSON object keyed by S2 cell id; every value is an array of
stop objects. One such array is a ``Cell``.
"""

from dataclasses import dataclass, field
from typing import Any, Iterator, Tuple

from geodex.errors import ParseError


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _field(obj: dict, key: str, kind, default, check=None):
    # null and missing keys both mean "zero value"
    value = obj.get(key)
    if value is None:
        return default
    ok = check(value) if check else isinstance(value, kind)
    if not ok:
        raise ParseError(f"field '{key}': expected {kind.__name__}, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class Geometry:
    """GeoJSON-like point. ``coordinates`` is (longitude, latitude) when well formed."""
    type: str = ""
    coordinates: Tuple[float, ...] = ()

    @property
    def is_point(self) -> bool:
        return len(self.coordinates) == 2

    @property
    def lon(self) -> float:
        return self.coordinates[0]

    @property
    def lat(self) -> float:
        return self.coordinates[1]

    @classmethod
    def from_json(cls, obj: Any) -> "Geometry":
        if obj is None:
            return cls()
        if not isinstance(obj, dict):
            raise ParseError(f"field 'loc': expected object, got {type(obj).__name__}")
        coords = _field(obj, "coordinates", list, [])
        for c in coords:
            if not _is_number(c):
                raise ParseError(f"field 'coordinates': expected numbers, got {type(c).__name__}")
        return cls(
            type=_field(obj, "type", str, ""),
            coordinates=tuple(float(c) for c in coords),
        )


@dataclass(frozen=True)
class POIEntry:
    """One portal, gym or stop."""
    name: str = ""
    is_portal: bool = False
    is_gym: bool = False
    is_stop: bool = False
    timestamp: int = 0
    s2l20: str = ""
    location: Geometry = field(default_factory=Geometry)

    @classmethod
    def from_json(cls, obj: Any) -> "POIEntry":
        if not isinstance(obj, dict):
            raise ParseError(f"expected POI object, got {type(obj).__name__}")
        return cls(
            name=_field(obj, "name", str, ""),
            is_portal=_field(obj, "portal", bool, False),
            is_gym=_field(obj, "gym", bool, False),
            is_stop=_field(obj, "stop", bool, False),
            timestamp=_field(obj, "ts", int, 0,
                             check=lambda v: isinstance(v, int) and not isinstance(v, bool)),
            s2l20=_field(obj, "s2l20", str, ""),
            location=Geometry.from_json(obj.get("loc")),
        )


@dataclass(frozen=True)
class Cell:
    """All POIs from one array value of a dump, in document order."""
    entries: Tuple[POIEntry, ...]
    source: str = ""
    index: int = 0

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[POIEntry]:
        return iter(self.entries)

    @classmethod
    def from_json(cls, value: Any, source: str = "", index: int = 0) -> "Cell":
        if not isinstance(value, list):
            raise ParseError(f"expected array of POIs, got {type(value).__name__}", path=source or None)
        try:
            entries = tuple(POIEntry.from_json(item) for item in value)
        except ParseError as e:
            if source and e.path is None:
                raise ParseError(str(e), path=source) from e
            raise
        return cls(entries=entries, source=source, index=index)
