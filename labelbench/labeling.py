"""
Interactive labeling operations: assigning classes to images and changing
the class of existing annotations.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from labelbench.errors import InvalidClassError, NotFoundError
from labelbench.models import Project, RoleType

logger = logging.getLogger(__name__)


@dataclass
class LabelingResult:
    """Outcome of a bulk labeling operation."""
    updated_count: int = 0
    created_count: int = 0
    deleted_count: int = 0
    failed_ids: list[int] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)


def assign_class_to_images(
    store,
    project: Project,
    image_ids: Iterable[int],
    class_id: Optional[int],
) -> LabelingResult:
    """
    Give a set of images one class.

    Existing annotations of an image are re-classed, an image without
    annotations receives a new one without geometry. A class_id of None
    clears the annotations of the images instead.

    In anomaly projects the normal class (index 0) cannot be given to an
    image whose role is Train; such images are reported as failed.
    """
    result = LabelingResult()
    image_ids = list(image_ids)

    target = None
    if class_id is not None:
        target = store.get_class_by_id(class_id)
        if target is None or target.project_id != project.id:
            raise NotFoundError(f"Class {class_id} not found in project {project.id}")

    refuse_train = project.is_anomaly_detection and target is not None and target.class_idx == 0

    for image_id in image_ids:
        image = store.get_image_by_id(image_id)
        if image is None or image.dataset_id != project.dataset_id:
            result.failed_ids.append(image_id)
            result.messages.append(f"Image {image_id} not found in project")
            continue

        existing = store.list_image_annotations(project.id, image_id)

        if target is None:
            result.deleted_count += store.delete_annotations([a.id for a in existing])
            continue

        if refuse_train:
            role = store.get_role(project.id, image_id)
            if role is not None and role.role_type == RoleType.TRAIN:
                result.failed_ids.append(image_id)
                result.messages.append(
                    f"Image '{image.name}' is in Train and cannot be labeled as normal class '{target.name}'"
                )
                continue

        if existing:
            result.updated_count += store.update_annotations_class([a.id for a in existing], target.id)
        else:
            store.create_annotation(image_id, project.id, target.id)
            result.created_count += 1

    logger.info(
        f"Labeling on project {project.id}: {result.updated_count} updated, {result.created_count} created, "
        f"{result.deleted_count} deleted, {len(result.failed_ids)} failed"
    )
    return result


def change_annotation_class(store, annotation_ids: Iterable[int], class_id: int) -> int:
    """
    Move annotations to another class of the same project.

    Returns:
        Number of annotations updated
    """
    annotation_ids = list(annotation_ids)
    target = store.get_class_by_id(class_id)
    if target is None:
        raise NotFoundError(f"Class {class_id} not found")

    for annotation_id in annotation_ids:
        annotation = store.get_annotation_by_id(annotation_id)
        if annotation is None:
            raise NotFoundError(f"Annotation {annotation_id} not found")
        if annotation.project_id != target.project_id:
            raise InvalidClassError(
                f"Class {class_id} does not belong to the project of annotation {annotation_id}"
            )

    return store.update_annotations_class(annotation_ids, class_id)
