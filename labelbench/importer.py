"""
Annotation import.

Merges a document's category list into the project taxonomy, then decodes
every item's label into annotations and inserts them in one batch.
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from labelbench.document import AnnotationDocument, parse_document
from labelbench.errors import (
    ClassIndexIntegrityError, GeometryError, ImportDocumentError,
    InvalidClassError, OperationCancelled, TaskTypeMismatchError,
)
from labelbench.geometry import decode_label, encode_information, label_from_wire, wire_entries
from labelbench.models import ASSIGNABLE_ROLES, ImageRecord, NewAnnotation, Project, ProjectClass, RoleType
from labelbench.taxonomy import default_color, find_index_gap, validate_class_name

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """Outcome of an import."""
    imported_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    annotation_count: int = 0
    failed_items: list[str] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    category_map: dict[int, int] = field(default_factory=dict)

    def summary(self) -> str:
        return (
            f"Imported={self.imported_count}, Skipped={self.skipped_count}, "
            f"Failed={self.failed_count}, Annotations={self.annotation_count}"
        )


def validate_document(project: Project, document: AnnotationDocument) -> list[str]:
    """
    Check a document against a project before anything is written.

    Returns:
        The cleaned category names

    Raises:
        ImportDocumentError: if the document cannot be imported as a whole
    """
    if not document.annotations:
        raise ImportDocumentError("Invalid or empty JSON data: no annotations")

    header = document.header
    if header is None or not header.type:
        raise ImportDocumentError("Task type is missing in the JSON header")

    if header.type != project.task_type.wire_name:
        raise TaskTypeMismatchError(
            f"Task type mismatch: project type is '{project.task_type.wire_name}', "
            f"but JSON type is '{header.type}'"
        )

    if not header.categories:
        raise ImportDocumentError("Categories are missing in the JSON header")

    categories = []
    seen = set()
    for name in header.categories:
        try:
            name = validate_class_name(name)
        except InvalidClassError as e:
            raise ImportDocumentError(f"Invalid category: {e}") from e
        if name.casefold() in seen:
            raise ImportDocumentError(f"Duplicate category name: '{name}'")
        seen.add(name.casefold())
        categories.append(name)
    return categories


def reconcile_categories(
    store,
    project: Project,
    categories: list[str],
    result: Optional[ImportResult] = None,
) -> dict[int, int]:
    """
    Align a document's category list with the project taxonomy.

    Category i of the list ends up at class index i when possible:
    - an existing class with the same name (ignoring case) is reused, and
      moved to index i if it sits elsewhere; whatever class held index i
      takes over the vacated index
    - an unknown name is created at index i, or at the lowest free index
      when i belongs to a different class

    Returns:
        Mapping from category index to persisted class id
    """
    if result is None:
        result = ImportResult()

    classes = store.list_classes(project.id)
    by_name: dict[str, ProjectClass] = {c.name.casefold(): c for c in classes}
    by_idx: dict[int, ProjectClass] = {c.class_idx: c for c in classes}
    category_map: dict[int, int] = {}

    def move(project_class: ProjectClass, new_idx: int) -> None:
        store.update_class_index(project_class.id, new_idx)
        project_class.class_idx = new_idx
        by_idx[new_idx] = project_class

    for import_idx, name in enumerate(categories):
        existing = by_name.get(name.casefold())

        if existing is not None:
            if existing.class_idx == import_idx:
                logger.info(f"Class '{name}' with index {import_idx} already exists, reusing it")
            else:
                old_idx = existing.class_idx
                displaced = by_idx.get(import_idx)
                move(existing, import_idx)
                result.messages.append(
                    f"Updated class '{existing.name}' index from {old_idx} to {import_idx}"
                )
                logger.info(f"Updated class '{existing.name}' index from {old_idx} to {import_idx}")

                if displaced is not None and displaced.id != existing.id:
                    move(displaced, old_idx)
                    result.messages.append(
                        f"Moved class '{displaced.name}' from index {import_idx} to {old_idx}"
                    )
                else:
                    del by_idx[old_idx]
            category_map[import_idx] = existing.id
            continue

        target_idx = import_idx
        if target_idx in by_idx:
            target_idx = 0
            while target_idx in by_idx:
                target_idx += 1
            logger.warning(
                f"Import index {import_idx} already taken by '{by_idx[import_idx].name}'. "
                f"Creating '{name}' with index {target_idx}"
            )
            result.messages.append(
                f"Index {import_idx} already used. Created '{name}' with index {target_idx}"
            )

        created = store.add_class(project.id, target_idx, name, default_color(target_idx))
        by_name[name.casefold()] = created
        by_idx[target_idx] = created
        category_map[import_idx] = created.id
        logger.info(f"Created new class '{name}' with index {target_idx}")
        result.messages.append(f"Created new class: '{name}' with index {target_idx}")

    gap = find_index_gap(by_idx.values())
    if gap is not None or len(by_idx) != len(by_name):
        raise ClassIndexIntegrityError(
            f"Class indices of project {project.id} are not sequential after reconciliation"
        )

    result.category_map = dict(category_map)
    logger.info(
        "Category map: " + ", ".join(f"[{k}]={v}" for k, v in sorted(category_map.items()))
    )
    return category_map


def _decode_item(
    project: Project,
    image: ImageRecord,
    raw_label,
    category_map: dict[int, int],
    category_count: int,
    result: ImportResult,
) -> list[NewAnnotation]:
    """Decode one item's label. Bad entries are dropped one by one."""
    task_type = project.task_type
    try:
        entries = wire_entries(task_type, raw_label)
    except GeometryError as e:
        logger.warning(f"Invalid label for image '{image.name}': {e}")
        result.messages.append(f"Invalid label for '{image.name}': {e}")
        return []

    annotations = []
    for entry in entries:
        try:
            decoded = decode_label(task_type, label_from_wire(task_type, entry), category_count)
        except GeometryError as e:
            logger.warning(f"Skipping annotation for image '{image.name}': {e}")
            result.messages.append(f"Skipped annotation for '{image.name}': {e}")
            continue

        class_id = category_map.get(decoded.category_index)
        if class_id is None or class_id <= 0:
            logger.warning(
                f"Class index {decoded.category_index} not found in category map for image '{image.name}'"
            )
            result.messages.append(
                f"Skipped annotation for '{image.name}': class index {decoded.category_index} has no class"
            )
            continue

        annotations.append(NewAnnotation(
            image_id=image.id,
            project_id=project.id,
            class_id=class_id,
            information=encode_information(task_type, decoded.points),
        ))
    return annotations


def import_annotations(
    store,
    project: Project,
    source: Union[str, bytes, dict, AnnotationDocument],
    cancel: Optional[threading.Event] = None,
) -> ImportResult:
    """
    Import an interchange document into a project.

    Whole-document problems raise before anything is written. Problems with
    single items are counted in the result and the import carries on.
    Run inside `store.transaction()` so a failure discards every write.

    Args:
        store: ProjectStore
        project: Target project
        source: Document as JSON text, dict or parsed document
        cancel: Optional event checked between items

    Returns:
        ImportResult with counts and messages
    """
    document = parse_document(source)
    categories = validate_document(project, document)
    result = ImportResult()

    category_map = reconcile_categories(store, project, categories, result)

    images = {image.name.casefold(): image for image in store.list_images(project.dataset_id)}
    logger.info(f"Processing {len(document.annotations)} annotations from import data")

    pending: list[NewAnnotation] = []
    for item in document.annotations:
        if cancel is not None and cancel.is_set():
            raise OperationCancelled("Import cancelled")

        image = images.get(item.filename.casefold())
        if image is None:
            result.failed_count += 1
            result.failed_items.append(item.filename)
            result.messages.append(f"Image '{item.filename}' not found in project.")
            continue

        if item.role in ASSIGNABLE_ROLES:
            store.set_role(project.id, image.id, RoleType(item.role))

        annotations = _decode_item(project, image, item.label, category_map, len(categories), result)
        if annotations:
            pending.extend(annotations)
            result.imported_count += 1
        else:
            result.skipped_count += 1
            result.messages.append(f"No valid annotations found for image '{item.filename}'.")

    if pending:
        logger.info(f"Adding {len(pending)} annotations in one batch")
        result.annotation_count = store.add_annotations(pending)

    logger.info(f"Import summary: {result.summary()}")
    return result


def import_annotations_file(store, project: Project, path: Union[str, Path], **kwargs) -> ImportResult:
    """Import a document stored in a JSON file."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ImportDocumentError(f"Cannot read {path}: {e}") from e
    return import_annotations(store, project, text, **kwargs)
