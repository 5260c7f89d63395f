"""
Class taxonomy management.

Keeps the class indices of a project zero-based and contiguous:
for N classes the indices are exactly 0..N-1.
"""

import re
import logging
from typing import Iterable, Optional

from labelbench.errors import ClassIndexIntegrityError, InvalidClassError, NotFoundError
from labelbench.models import ProjectClass

logger = logging.getLogger(__name__)

MAX_CLASS_NAME_LENGTH = 30

# Default class colors (cycled through by index)
DEFAULT_COLORS = [
    "#FF6B6B", "#4ECDC4", "#45B7D1", "#96CEB4", "#FFEAA7",
    "#DDA0DD", "#98D8C8", "#F7DC6F", "#BB8FCE", "#85C1E9",
    "#F8B500", "#00CED1", "#FF69B4", "#32CD32", "#FFD700",
]

_COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")


def default_color(index: int) -> str:
    return DEFAULT_COLORS[index % len(DEFAULT_COLORS)]


def validate_class_name(name: str) -> str:
    """Return the stripped name or raise InvalidClassError."""
    if name is None or not name.strip():
        raise InvalidClassError("Class name cannot be empty")
    name = name.strip()
    if len(name) > MAX_CLASS_NAME_LENGTH:
        raise InvalidClassError(
            f"Class name cannot exceed {MAX_CLASS_NAME_LENGTH} characters: {name!r}"
        )
    return name


def validate_color(color_hex: str) -> str:
    """Return the color upper-cased or raise InvalidClassError."""
    if not color_hex or not _COLOR_PATTERN.match(color_hex):
        raise InvalidClassError(f"Color must be in #RRGGBB format, got {color_hex!r}")
    return color_hex.upper()


def find_index_gap(classes: Iterable[ProjectClass]) -> Optional[tuple[int, int]]:
    """
    Find the first position where sorted indices leave 0..N-1.

    Returns:
        (expected, found) for the first mismatch, or None if sequential
    """
    indices = sorted(c.class_idx for c in classes)
    for expected, found in enumerate(indices):
        if found != expected:
            return expected, found
    return None


def is_sequential(classes: Iterable[ProjectClass]) -> bool:
    return find_index_gap(classes) is None


def next_class_index(existing_classes: list[ProjectClass]) -> int:
    """
    Index for a class about to be appended to a taxonomy.

    Raises:
        ClassIndexIntegrityError: if the existing indices are not 0..N-1
    """
    gap = find_index_gap(existing_classes)
    if gap is not None:
        expected, found = gap
        raise ClassIndexIntegrityError(
            f"Class indices are not sequential: expected {expected}, found {found}"
        )
    return len(existing_classes)


def reindex_after_deletion(store, remaining_classes: list[ProjectClass], deleted_idx: int) -> list[ProjectClass]:
    """
    Renumber the remaining classes to 0..M-1 keeping their relative order.

    Every class whose position differs from its index is updated in the store.

    Returns:
        The remaining classes with their new indices, ordered by index
    """
    ordered = sorted(remaining_classes, key=lambda c: (c.class_idx, c.id))
    updated = 0
    for position, project_class in enumerate(ordered):
        if project_class.class_idx == position:
            continue
        logger.info(
            f"Reindexing class {project_class.id} '{project_class.name}' "
            f"from {project_class.class_idx} to {position} after removal of index {deleted_idx}"
        )
        store.update_class_index(project_class.id, position)
        project_class.class_idx = position
        updated += 1

    if updated:
        logger.info(f"Reindexed {updated} classes")
    return ordered


def list_classes(store, project_id: int) -> list[ProjectClass]:
    """List the classes of a project ordered by index."""
    return store.list_classes(project_id)


def create_class(store, project_id: int, name: str, color_hex: Optional[str] = None) -> list[ProjectClass]:
    """
    Append a class to a project's taxonomy.

    Args:
        store: ProjectStore
        project_id: ID of the project
        name: Class name, unique within the project ignoring case
        color_hex: Color in #RRGGBB format; picked from the palette when omitted

    Returns:
        All classes of the project ordered by index
    """
    name = validate_class_name(name)
    store.get_project(project_id)

    existing = store.list_classes(project_id)
    if any(c.name.casefold() == name.casefold() for c in existing):
        raise InvalidClassError(f"Class '{name}' already exists")

    class_idx = next_class_index(existing)
    color_hex = validate_color(color_hex) if color_hex else default_color(class_idx)

    created = store.add_class(project_id, class_idx, name, color_hex)
    logger.info(f"Created class '{name}' with index {class_idx} in project {project_id}")
    return existing + [created]


def update_class(
    store,
    class_id: int,
    name: Optional[str] = None,
    color_hex: Optional[str] = None,
) -> ProjectClass:
    """Rename or recolor a class. Its index never changes here."""
    project_class = store.get_class_by_id(class_id)
    if project_class is None:
        raise NotFoundError(f"Class {class_id} not found")

    new_name = validate_class_name(name) if name is not None else project_class.name
    new_color = validate_color(color_hex) if color_hex is not None else project_class.color_hex

    folded = new_name.casefold()
    if any(
        c.id != class_id and c.name.casefold() == folded
        for c in store.list_classes(project_class.project_id)
    ):
        raise InvalidClassError(f"Class '{new_name}' already exists")

    return store.update_class(class_id, new_name, new_color)


def delete_class(store, class_id: int) -> list[ProjectClass]:
    """
    Delete a class with its annotations and close the index gap.

    Returns:
        Remaining classes of the project ordered by index
    """
    project_class = store.get_class_by_id(class_id)
    if project_class is None:
        raise NotFoundError(f"Class {class_id} not found")

    removed = store.delete_class_annotations(class_id)
    if removed:
        logger.info(f"Deleted {removed} annotations of class {class_id}")

    store.delete_class(class_id)
    remaining = store.list_classes(project_class.project_id)
    return reindex_after_deletion(store, remaining, project_class.class_idx)
