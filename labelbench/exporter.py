"""
Annotation export.

Renders a project's images, annotations and roles into an interchange
document. Category indices are positions in the class list ordered by
class id, independent of class_idx.
"""

import logging
import threading
from pathlib import Path
from typing import Optional, Union

from labelbench.document import DOCUMENT_VERSION, AnnotationDocument, DocumentHeader, DocumentItem
from labelbench.errors import GeometryError, OperationCancelled
from labelbench.geometry import decode_information, encode_label
from labelbench.models import Annotation, Project, ProjectClass, ProjectType, RoleType

logger = logging.getLogger(__name__)

DEFAULT_CREATOR = "LabelBench"
EXPORT_DESCRIPTION = "Dataset annotations"
ANOMALY_NAME_MARKERS = ("defect", "anomaly")


def _looks_anomalous(project_class: ProjectClass) -> bool:
    name = project_class.name.lower()
    return any(marker in name for marker in ANOMALY_NAME_MARKERS)


def _anomaly_label(project_class: Optional[ProjectClass], category_index: int) -> int:
    if project_class is None:
        return 0
    if _looks_anomalous(project_class) or category_index == 1:
        return 1
    return 0


def _export_role(role_type: Optional[RoleType]) -> int:
    """Stored Train/Validation/Test pass through, anything else becomes 0."""
    if role_type is None or role_type == RoleType.NONE:
        return 0
    return int(role_type)


def _shape_labels(
    task_type: ProjectType,
    image_name: str,
    annotations: list[Annotation],
    category_of: dict[int, int],
) -> list[list]:
    labels = []
    for annotation in annotations:
        try:
            points = decode_information(task_type, annotation.information)
        except GeometryError as e:
            logger.error(f"Skipping annotation {annotation.id} of '{image_name}': {e}")
            continue
        if not points:
            logger.warning(f"Annotation {annotation.id} of '{image_name}' has no geometry, skipping")
            continue
        labels.append(encode_label(task_type, category_of.get(annotation.class_id, 0), points))
    return labels


def export_annotations(
    store,
    project: Project,
    creator: str = DEFAULT_CREATOR,
    cancel: Optional[threading.Event] = None,
) -> AnnotationDocument:
    """
    Export every image of a project's dataset as one document item.

    Args:
        store: ProjectStore
        project: Project to export
        creator: Value of the header's creator field
        cancel: Optional event checked between images

    Returns:
        AnnotationDocument ready to be serialized
    """
    task_type = project.task_type
    classes = store.list_classes_by_id(project.id)
    category_of = {c.id: position for position, c in enumerate(classes)}
    class_by_id = {c.id: c for c in classes}

    if task_type == ProjectType.ANOMALY_DETECTION and len(classes) > 1 and not _looks_anomalous(classes[1]):
        logger.warning(
            f"Class '{classes[1].name}' sits at export index 1 and will be exported as anomaly "
            f"although its name does not mark it as one"
        )

    images = store.list_images(project.dataset_id)
    annotations = store.annotations_by_image(project.id)
    roles = {role.image_id: role.role_type for role in store.list_roles(project.id)}

    items = []
    for image in images:
        if cancel is not None and cancel.is_set():
            raise OperationCancelled("Export cancelled")

        image_annotations = annotations.get(image.id, [])
        first = image_annotations[0] if image_annotations else None

        if task_type == ProjectType.CLASSIFICATION:
            label = category_of.get(first.class_id, 0) if first else 0
        elif task_type == ProjectType.ANOMALY_DETECTION:
            if first is None:
                label = 0
            else:
                label = _anomaly_label(class_by_id.get(first.class_id), category_of.get(first.class_id, 0))
        else:
            label = _shape_labels(task_type, image.name, image_annotations, category_of)

        items.append(DocumentItem(
            filename=image.name,
            label=label,
            role=_export_role(roles.get(image.id)),
        ))

    header = DocumentHeader(
        version=DOCUMENT_VERSION,
        type=task_type.wire_name,
        creator=creator,
        categories=[c.name for c in classes],
        description=EXPORT_DESCRIPTION,
    )
    logger.info(f"Exported {len(items)} images with {len(classes)} categories from project {project.id}")
    return AnnotationDocument(header=header, annotations=items)


def write_export(document: AnnotationDocument, path: Union[str, Path]) -> Path:
    """Write an exported document as JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(document.to_json(), encoding="utf-8")
    logger.info(f"Wrote export to {path}")
    return path
