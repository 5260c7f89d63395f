"""
Train / validation / test partitioning of project images.

Splits are drawn with one numpy Generator per call. Callers that need a
reproducible split pass their own seeded generator.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np

from labelbench.errors import InvalidRoleError, RatioError
from labelbench.models import Project, ProjectClass, RoleType

logger = logging.getLogger(__name__)

RATIO_TOLERANCE = 0.001


def validate_ratios(train_ratio: float, validation_ratio: float, test_ratio: float) -> None:
    """
    Raises:
        RatioError: unless every ratio is in [0, 1], at least one is
            positive and they sum to 1 within RATIO_TOLERANCE
    """
    ratios = {"train": train_ratio, "validation": validation_ratio, "test": test_ratio}
    for name, ratio in ratios.items():
        if not 0.0 <= ratio <= 1.0:
            raise RatioError(f"{name} ratio must be between 0 and 1, got {ratio}")
    if all(ratio == 0 for ratio in ratios.values()):
        raise RatioError("At least one ratio must be greater than 0")
    total = train_ratio + validation_ratio + test_ratio
    if abs(total - 1.0) > RATIO_TOLERANCE:
        raise RatioError(f"Ratios must sum to 1.0, got {total:.4f}")


def split_counts(total: int, train_ratio: float, validation_ratio: float) -> tuple[int, int, int]:
    """
    Number of images per role for `total` candidates.

    Counts are rounded half to even. Rounding overshoot is taken from
    train first, then validation.
    """
    train_count = round(total * train_ratio)
    validation_count = round(total * validation_ratio)
    test_count = total - train_count - validation_count
    while test_count < 0:
        if train_count > 0:
            train_count -= 1
        else:
            validation_count -= 1
        test_count = total - train_count - validation_count
    return train_count, validation_count, test_count


def perform_random_split(
    image_ids: Iterable[int],
    train_ratio: float = 0.8,
    validation_ratio: float = 0.2,
    test_ratio: float = 0.0,
    rng: Optional[np.random.Generator] = None,
) -> dict[int, RoleType]:
    """
    Shuffle image ids and assign Train, Validation and Test by ratio.

    Args:
        image_ids: Candidate image ids
        train_ratio: Share of Train
        validation_ratio: Share of Validation
        test_ratio: Share of Test
        rng: Generator to shuffle with; a fresh OS-seeded one when omitted

    Returns:
        Mapping image id -> role, empty for no candidates
    """
    validate_ratios(train_ratio, validation_ratio, test_ratio)
    ids = list(image_ids)
    if not ids:
        return {}

    if rng is None:
        rng = np.random.default_rng()
    shuffled = [ids[i] for i in rng.permutation(len(ids))]

    train_count, validation_count, _ = split_counts(len(ids), train_ratio, validation_ratio)

    assignments = {}
    for position, image_id in enumerate(shuffled):
        if position < train_count:
            assignments[image_id] = RoleType.TRAIN
        elif position < train_count + validation_count:
            assignments[image_id] = RoleType.VALIDATION
        else:
            assignments[image_id] = RoleType.TEST
    return assignments


def _split_normal_images(
    image_ids: list[int],
    validation_ratio: float,
    test_ratio: float,
    rng: np.random.Generator,
) -> dict[int, RoleType]:
    """Split normal images of an anomaly project. They never go to Train."""
    if not image_ids:
        return {}
    remaining = validation_ratio + test_ratio
    if remaining == 0:
        return {image_id: RoleType.VALIDATION for image_id in image_ids}

    assignments = perform_random_split(
        image_ids, 0.0, validation_ratio / remaining, test_ratio / remaining, rng=rng
    )
    return {
        image_id: RoleType.VALIDATION if role == RoleType.TRAIN else role
        for image_id, role in assignments.items()
    }


@dataclass
class SplitResult:
    """Outcome of a project split."""
    train_count: int = 0
    validation_count: int = 0
    test_count: int = 0
    skipped_count: int = 0
    total_count: int = 0
    message: str = ""
    assignments: dict[int, RoleType] = field(default_factory=dict)

    @classmethod
    def from_assignments(cls, assignments: dict[int, RoleType], total_count: int) -> 'SplitResult':
        roles = list(assignments.values())
        result = cls(
            train_count=roles.count(RoleType.TRAIN),
            validation_count=roles.count(RoleType.VALIDATION),
            test_count=roles.count(RoleType.TEST),
            skipped_count=total_count - len(assignments),
            total_count=total_count,
            assignments=assignments,
        )
        result.message = (
            f"Split completed: Train={result.train_count}, "
            f"Validation={result.validation_count}, Test={result.test_count}"
        )
        if result.skipped_count:
            result.message += f" ({result.skipped_count} images skipped)"
        return result


def _class_at(classes: list[ProjectClass], class_idx: int) -> Optional[ProjectClass]:
    return next((c for c in classes if c.class_idx == class_idx), None)


def _anomaly_assignments(
    annotated: dict[int, int],
    normal: ProjectClass,
    anomaly: ProjectClass,
    ratios: tuple[float, float, float],
    rng: np.random.Generator,
) -> dict[int, RoleType]:
    normal_ids = [i for i, class_id in annotated.items() if class_id == normal.id]
    anomaly_ids = [i for i, class_id in annotated.items() if class_id == anomaly.id]
    excluded = len(annotated) - len(normal_ids) - len(anomaly_ids)
    if excluded:
        logger.info(f"{excluded} images carry neither the normal nor the anomaly class and are not split")

    train_ratio, validation_ratio, test_ratio = ratios
    assignments = _split_normal_images(normal_ids, validation_ratio, test_ratio, rng)
    assignments.update(perform_random_split(anomaly_ids, train_ratio, validation_ratio, test_ratio, rng=rng))
    return assignments


def split_project_roles(
    store,
    project: Project,
    train_ratio: float = 0.8,
    validation_ratio: float = 0.2,
    test_ratio: float = 0.0,
    rng: Optional[np.random.Generator] = None,
) -> SplitResult:
    """
    Assign roles to the annotated images of a project.

    Images without annotations keep their role. In anomaly projects images
    are grouped by the class of their first annotation, and normal images
    (class index 0) are only ever placed in Validation or Test.

    Returns:
        SplitResult with per-role counts and the applied assignments
    """
    validate_ratios(train_ratio, validation_ratio, test_ratio)
    if rng is None:
        rng = np.random.default_rng()

    total = store.get_image_count(project.dataset_id)
    # image id -> class id of its first annotation
    annotated = {
        image_id: annotations[0].class_id
        for image_id, annotations in sorted(store.annotations_by_image(project.id).items())
    }
    ratios = (train_ratio, validation_ratio, test_ratio)

    assignments = None
    if project.is_anomaly_detection:
        classes = store.list_classes(project.id)
        normal, anomaly = _class_at(classes, 0), _class_at(classes, 1)
        if normal is None or anomaly is None:
            logger.warning(
                f"Project {project.id} lacks a normal or anomaly class, using the general split"
            )
        else:
            assignments = _anomaly_assignments(annotated, normal, anomaly, ratios, rng)

    if assignments is None:
        assignments = perform_random_split(annotated.keys(), *ratios, rng=rng)

    store.set_roles(project.id, assignments)
    result = SplitResult.from_assignments(assignments, total)
    logger.info(result.message)
    return result


@dataclass
class RoleUpdateResult:
    """Outcome of a bulk role update."""
    updated_count: int = 0
    created_count: int = 0
    redirected_ids: list[int] = field(default_factory=list)
    failed_ids: list[int] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)


def update_roles(store, project: Project, image_ids: Iterable[int], role) -> RoleUpdateResult:
    """
    Set one role on many images.

    In anomaly projects a Train request for an image that carries a normal
    class annotation is applied as Validation instead.

    Raises:
        InvalidRoleError: if role is not a RoleType value
    """
    try:
        role = RoleType(role)
    except ValueError as e:
        raise InvalidRoleError(f"Invalid role type: {role!r}. Must be 0-3") from e

    result = RoleUpdateResult()
    normal_images: set[int] = set()
    if project.is_anomaly_detection and role == RoleType.TRAIN:
        normal = _class_at(store.list_classes(project.id), 0)
        if normal is not None:
            normal_images = {
                a.image_id for a in store.list_annotations(project.id) if a.class_id == normal.id
            }

    for image_id in image_ids:
        image = store.get_image_by_id(image_id)
        if image is None or image.dataset_id != project.dataset_id:
            result.failed_ids.append(image_id)
            result.messages.append(f"Image {image_id} not found in project")
            continue

        target = role
        if image_id in normal_images:
            target = RoleType.VALIDATION
            result.redirected_ids.append(image_id)
            result.messages.append(
                f"Image '{image.name}' has a normal annotation and cannot be in Train; set to Validation"
            )

        if store.set_role(project.id, image_id, target):
            result.created_count += 1
        result.updated_count += 1

    logger.info(
        f"Updated roles of {result.updated_count} images to {role.display_name} "
        f"({len(result.redirected_ids)} redirected, {len(result.failed_ids)} failed)"
    )
    return result


def get_roles(store, project: Project) -> dict[int, RoleType]:
    """Current role of every image in a project."""
    return {role.image_id: role.role_type for role in store.list_roles(project.id)}
