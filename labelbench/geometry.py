"""
Geometry codec - converts between wire labels, normalized point geometry and
the stored `information` JSON of an annotation.

Wire labels (interchange documents):
- classification:    7
- anomaly_detection: 0 | 1
- object_detection:  [[cls, x1, y1, x2, y2], ...]
- segmentation:      [[cls, x1, y1, x2, y2, ..., xn, yn], ...]

Stored geometry:
- object_detection:  [[x1,y1],[x2,y2]]
- segmentation:      [[[x1,y1],[x2,y2],...]]  (single polygon wrapper)
- otherwise:         NULL
"""

import json
import logging
import numbers
from dataclasses import dataclass
from typing import Any, Optional, Union

from labelbench.errors import GeometryError
from labelbench.models import ProjectType

logger = logging.getLogger(__name__)

Point = tuple[int, int]

MIN_POLYGON_POINTS = 3
BBOX_LABEL_LENGTH = 5

_JSON_SEPARATORS = (",", ":")


@dataclass(frozen=True)
class NumberLabel:
    """Wire label carrying only a class or anomaly value."""
    value: int


@dataclass(frozen=True)
class CoordinatesLabel:
    """Wire label `[cls, x1, y1, ...]` for one shape."""
    values: tuple[float, ...]


Label = Union[NumberLabel, CoordinatesLabel]


@dataclass(frozen=True)
class DecodedAnnotation:
    """A wire label resolved to a category index and normalized points."""
    category_index: int
    points: tuple[Point, ...] = ()

    @property
    def has_geometry(self) -> bool:
        return bool(self.points)


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _as_int(value: Any, what: str) -> int:
    if not _is_number(value):
        raise GeometryError(f"{what} must be a number, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise GeometryError(f"{what} must be an integer, got {value!r}")
    return int(value)


def wire_entries(task_type: ProjectType, raw: Any) -> list[Any]:
    """
    Split a raw JSON label into its per-annotation entries.

    Classification and anomaly projects carry one number, detection and
    segmentation projects carry an array with one entry per shape.

    Raises:
        GeometryError: if the label shape does not fit the task type
    """
    if not task_type.has_geometry:
        return [raw]
    if not isinstance(raw, list):
        raise GeometryError(
            f"Label for {task_type.wire_name} must be an array, got {type(raw).__name__}"
        )
    return list(raw)


def label_from_wire(task_type: ProjectType, entry: Any) -> Label:
    """
    Resolve one raw entry into the typed label the task type expects.

    Raises:
        GeometryError: if the entry has the wrong type
    """
    if not task_type.has_geometry:
        return NumberLabel(_as_int(entry, "Label"))

    if not isinstance(entry, list):
        raise GeometryError(f"Annotation entry must be an array, got {entry!r}")
    if not all(_is_number(v) for v in entry):
        raise GeometryError(f"Annotation entry must contain only numbers: {entry!r}")
    return CoordinatesLabel(tuple(entry))


def _category_index(value: Any, category_count: int) -> int:
    index = _as_int(value, "Class index")
    if index < 0 or index >= category_count:
        raise GeometryError(
            f"Class index {index} out of range for {category_count} categories"
        )
    return index


def decode_label(task_type: ProjectType, label: Label, category_count: int) -> DecodedAnnotation:
    """
    Decode one wire label into a category index and normalized geometry.

    Coordinates are truncated to integer pixels.

    Args:
        task_type: Task type of the target project
        label: Typed wire label
        category_count: Number of categories in the document header

    Returns:
        DecodedAnnotation

    Raises:
        GeometryError: if the label is out of range or the geometry is invalid
    """
    if task_type == ProjectType.CLASSIFICATION:
        if not isinstance(label, NumberLabel):
            raise GeometryError("Classification label must be a single number")
        return DecodedAnnotation(_category_index(label.value, category_count))

    if task_type == ProjectType.ANOMALY_DETECTION:
        if not isinstance(label, NumberLabel):
            raise GeometryError("Anomaly label must be a single number")
        if label.value not in (0, 1):
            raise GeometryError(f"Anomaly label must be 0 or 1, got {label.value}")
        if label.value >= category_count:
            raise GeometryError(
                f"Anomaly label {label.value} exceeds category count {category_count}"
            )
        return DecodedAnnotation(label.value)

    if not isinstance(label, CoordinatesLabel) or not label.values:
        raise GeometryError("Shape label must be a non-empty coordinate array")

    index = _category_index(label.values[0], category_count)

    if task_type == ProjectType.OBJECT_DETECTION:
        return DecodedAnnotation(index, _decode_bbox(label.values))
    if task_type == ProjectType.SEGMENTATION:
        return DecodedAnnotation(index, _decode_polygon(label.values))

    raise GeometryError(f"Unsupported task type: {task_type!r}")


def _decode_bbox(values: tuple[float, ...]) -> tuple[Point, ...]:
    if len(values) != BBOX_LABEL_LENGTH:
        raise GeometryError(
            f"Bounding box needs {BBOX_LABEL_LENGTH} values, got {len(values)}"
        )
    x1, y1, x2, y2 = (int(v) for v in values[1:])
    if x2 <= x1 or y2 <= y1:
        raise GeometryError(
            f"Invalid bounding box ({x1}, {y1}, {x2}, {y2}): x2 must be > x1 and y2 > y1"
        )
    if x1 < 0 or y1 < 0:
        raise GeometryError(
            f"Invalid bounding box ({x1}, {y1}, {x2}, {y2}): coordinates must be non-negative"
        )
    return ((x1, y1), (x2, y2))


def _decode_polygon(values: tuple[float, ...]) -> tuple[Point, ...]:
    coords = values[1:]
    points = []
    # A trailing unpaired value is dropped
    for i in range(0, len(coords) - 1, 2):
        x, y = int(coords[i]), int(coords[i + 1])
        if x < 0 or y < 0:
            logger.warning(f"Dropping polygon point ({x}, {y}): coordinates must be non-negative")
            continue
        points.append((x, y))

    if len(points) < MIN_POLYGON_POINTS:
        raise GeometryError(
            f"Polygon needs at least {MIN_POLYGON_POINTS} points, got {len(points)}"
        )
    return tuple(points)


# ==================== Stored geometry ====================

@dataclass(frozen=True)
class StoredGeometry:
    """
    Geometry as persisted in an annotation's `information` column.

    The task type decides the JSON layout, so writing and strict reading
    go through this one type.
    """
    task_type: ProjectType
    points: tuple[Point, ...] = ()

    def to_information(self) -> Optional[str]:
        """Serialize to the stored JSON layout, None for absent geometry."""
        if not self.points or not self.task_type.has_geometry:
            return None

        pairs = [[x, y] for x, y in self.points]
        if self.task_type == ProjectType.OBJECT_DETECTION:
            return json.dumps(pairs[:2], separators=_JSON_SEPARATORS)
        return json.dumps([pairs], separators=_JSON_SEPARATORS)

    @classmethod
    def from_information(cls, task_type: ProjectType, information: Optional[str]) -> 'StoredGeometry':
        """
        Strictly parse stored geometry written by `to_information`.

        Raises:
            GeometryError: if the stored JSON has the wrong layout
        """
        if not information:
            return cls(task_type)
        if not task_type.has_geometry:
            return cls(task_type)

        try:
            data = json.loads(information)
        except json.JSONDecodeError as e:
            raise GeometryError(f"Stored geometry is not valid JSON: {e}") from e

        if task_type == ProjectType.OBJECT_DETECTION:
            if not isinstance(data, list) or len(data) < 2:
                raise GeometryError("Stored bounding box needs two points")
            return cls(task_type, tuple(_stored_point(p) for p in data[:2]))

        if not isinstance(data, list) or not data or not isinstance(data[0], list) or not data[0]:
            raise GeometryError("Stored polygon must be wrapped in a list of polygons")
        points = tuple(_stored_point(p) for p in data[0] if isinstance(p, list) and len(p) >= 2)
        return cls(task_type, points)


def _number(value: Any) -> Union[int, float]:
    if not _is_number(value):
        raise GeometryError(f"Coordinate must be a number, got {value!r}")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _stored_point(pair: Any) -> Point:
    if not isinstance(pair, list) or len(pair) < 2:
        raise GeometryError(f"Stored point must be a coordinate pair, got {pair!r}")
    return (_number(pair[0]), _number(pair[1]))


def encode_information(task_type: ProjectType, points) -> Optional[str]:
    """Serialize normalized points to the stored `information` JSON."""
    return StoredGeometry(task_type, tuple(points)).to_information()


def decode_information(task_type: ProjectType, information: Optional[str]) -> tuple[Point, ...]:
    """Strictly read stored geometry back into normalized points."""
    return StoredGeometry.from_information(task_type, information).points


def encode_label(task_type: ProjectType, category_index: int, points) -> list:
    """
    Build the export label array for one shape annotation.

    Returns:
        [category_index, x1, y1, ...]; for detection only the two box corners
    """
    if task_type == ProjectType.OBJECT_DETECTION:
        points = list(points)[:2]
    label = [category_index]
    for x, y in points:
        label.extend((x, y))
    return label


# ==================== Legacy read boundary ====================

def parse_points_lenient(information: Optional[str]) -> list[tuple[float, float]]:
    """
    Read stored geometry of unknown vintage for display purposes.

    Accepts nested pairs `[[x,y],...]` first and falls back to a flat
    array `[x,y,x,y,...]`. A single-polygon wrapper `[[[x,y],...]]` is
    unwrapped. Anything unreadable gives an empty list.
    """
    if not information:
        return []
    try:
        data = json.loads(information)
    except (json.JSONDecodeError, TypeError):
        return []
    if not isinstance(data, list) or not data:
        return []

    # Single-polygon wrapper
    if isinstance(data[0], list) and data[0] and isinstance(data[0][0], list):
        data = data[0]

    nested = _nested_points(data)
    if nested:
        return nested
    return _flat_points(data)


def _nested_points(data: list) -> list[tuple[float, float]]:
    points = []
    for coord in data:
        if not isinstance(coord, list):
            return []
        if len(coord) >= 2 and _is_number(coord[0]) and _is_number(coord[1]):
            points.append((coord[0], coord[1]))
    return points


def _flat_points(data: list) -> list[tuple[float, float]]:
    if not all(_is_number(v) for v in data):
        return []
    return [(data[i], data[i + 1]) for i in range(0, len(data) - 1, 2)]
