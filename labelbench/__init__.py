"""
LabelBench core - taxonomy, annotation interchange and dataset partitioning
"""

__version__ = "0.1.0"

from labelbench.models import (
    Project, ProjectType, ProjectClass, ImageRecord, Annotation, NewAnnotation, Role, RoleType,
)
from labelbench.store import ProjectStore
from labelbench.importer import ImportResult, import_annotations, import_annotations_file
from labelbench.exporter import export_annotations, write_export
from labelbench.partition import perform_random_split, split_project_roles, update_roles

__all__ = [
    "Project", "ProjectType", "ProjectClass", "ImageRecord", "Annotation", "NewAnnotation",
    "Role", "RoleType",
    "ProjectStore",
    "ImportResult", "import_annotations", "import_annotations_file",
    "export_annotations", "write_export",
    "perform_random_split", "split_project_roles", "update_roles",
]
