"""
Core data models for LabelBench.

Dataclasses representing the main entities of a labeling project.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Optional
import json


class ProjectType(IntEnum):
    """Task type of a project. Decides geometry format and split rules."""
    CLASSIFICATION = 0
    OBJECT_DETECTION = 1
    SEGMENTATION = 2
    ANOMALY_DETECTION = 3

    @property
    def wire_name(self) -> str:
        """Name used in the `type` field of interchange documents."""
        return _WIRE_NAMES[self]

    @classmethod
    def from_wire_name(cls, name: str) -> 'ProjectType':
        for project_type, wire_name in _WIRE_NAMES.items():
            if wire_name == name:
                return project_type
        raise ValueError(f"Unknown task type: {name!r}")

    @property
    def has_geometry(self) -> bool:
        return self in (ProjectType.OBJECT_DETECTION, ProjectType.SEGMENTATION)


_WIRE_NAMES = {
    ProjectType.CLASSIFICATION: "classification",
    ProjectType.OBJECT_DETECTION: "object_detection",
    ProjectType.SEGMENTATION: "segmentation",
    ProjectType.ANOMALY_DETECTION: "anomaly_detection",
}


class RoleType(IntEnum):
    """Partition an image belongs to within a project."""
    TRAIN = 0
    VALIDATION = 1
    TEST = 2
    NONE = 3

    @property
    def display_name(self) -> str:
        return self.name.capitalize()


# Roles that may be requested by an import document
ASSIGNABLE_ROLES = (RoleType.TRAIN, RoleType.VALIDATION, RoleType.TEST)


@dataclass
class Dataset:
    """A directory of images shared by one or more projects."""
    id: int
    name: str
    root_dir: str
    created_at: datetime


@dataclass
class ImageRecord:
    """Represents an image in a dataset."""
    id: int
    dataset_id: int
    name: str  # File name, unique within the dataset
    path: str
    width: int
    height: int


@dataclass
class Project:
    """Represents a labeling project over a dataset."""
    id: int
    dataset_id: int
    name: str
    task_type: ProjectType
    root_dir: str
    db_path: str
    created_at: datetime
    settings_json: Optional[str] = None

    @property
    def settings(self) -> dict:
        """Parse settings JSON to dict."""
        if self.settings_json:
            return json.loads(self.settings_json)
        return {}

    @property
    def is_anomaly_detection(self) -> bool:
        return self.task_type == ProjectType.ANOMALY_DETECTION


@dataclass
class ProjectClass:
    """A taxonomy entry. class_idx values of a project are always 0..N-1."""
    id: int
    project_id: int
    class_idx: int
    name: str
    color_hex: str


@dataclass
class Annotation:
    """Represents an annotation on an image."""
    id: int
    image_id: int
    project_id: int
    class_id: int
    information: Optional[str] = None  # Stored geometry JSON, None for class-only labels
    created_at: Optional[datetime] = None

    @property
    def points(self) -> list[tuple[float, float]]:
        """Stored geometry as a point list, read leniently."""
        from labelbench.geometry import parse_points_lenient
        return parse_points_lenient(self.information)


@dataclass
class NewAnnotation:
    """An annotation waiting to be inserted in a batch."""
    image_id: int
    project_id: int
    class_id: int
    information: Optional[str] = None


@dataclass
class Role:
    """Role of an image within a project."""
    id: int
    image_id: int
    project_id: int
    role_type: RoleType
