"""
QA Validation Engine for annotations.

Validates stored annotations and project state for common issues:
- Bounding box extent and image bounds
- Polygon point count and image bounds
- Geometry present where the task type has none
- Class index sequence and role coverage
"""

from dataclasses import dataclass

from labelbench.errors import GeometryError
from labelbench.geometry import MIN_POLYGON_POINTS, decode_information
from labelbench.models import Annotation, Project, ProjectType, RoleType
from labelbench.taxonomy import find_index_gap


@dataclass
class ValidationWarning:
    """A validation warning."""
    annotation_id: int  # 0 for project-level findings
    severity: str  # 'error', 'warning', 'info'
    code: str
    message: str


def validate_annotation(
    annotation: Annotation,
    task_type: ProjectType,
    image_width: int,
    image_height: int,
) -> list[ValidationWarning]:
    """
    Validate a single annotation.

    Args:
        annotation: The annotation to validate
        task_type: Task type of the annotation's project
        image_width: Width of the image
        image_height: Height of the image

    Returns:
        List of validation warnings
    """
    warnings = []

    if not task_type.has_geometry:
        if annotation.information:
            warnings.append(ValidationWarning(
                annotation_id=annotation.id,
                severity='info',
                code='UNEXPECTED_GEOMETRY',
                message=f'{task_type.wire_name} annotation carries geometry that will be ignored'
            ))
        return warnings

    try:
        points = decode_information(task_type, annotation.information)
    except GeometryError as e:
        warnings.append(ValidationWarning(
            annotation_id=annotation.id,
            severity='error',
            code='UNREADABLE_GEOMETRY',
            message=str(e)
        ))
        return warnings

    if not points:
        warnings.append(ValidationWarning(
            annotation_id=annotation.id,
            severity='error',
            code='NO_GEOMETRY',
            message='Annotation has no geometry'
        ))
        return warnings

    if task_type == ProjectType.OBJECT_DETECTION:
        (x1, y1), (x2, y2) = points[0], points[1]

        if x1 >= x2 or y1 >= y2:
            warnings.append(ValidationWarning(
                annotation_id=annotation.id,
                severity='error',
                code='INVALID_BBOX',
                message=f'Invalid bounding box: ({x1}, {y1}, {x2}, {y2}) - width or height is zero/negative'
            ))

        if x1 < 0 or y1 < 0 or x2 > image_width or y2 > image_height:
            warnings.append(ValidationWarning(
                annotation_id=annotation.id,
                severity='warning',
                code='BBOX_OUT_OF_BOUNDS',
                message='Bounding box extends outside image bounds'
            ))
        return warnings

    if len(points) < MIN_POLYGON_POINTS:
        warnings.append(ValidationWarning(
            annotation_id=annotation.id,
            severity='error',
            code='POLYGON_TOO_FEW_POINTS',
            message=f'Polygon has only {len(points)} points (minimum {MIN_POLYGON_POINTS} required)'
        ))

    for i, (x, y) in enumerate(points):
        if not (0 <= x <= image_width and 0 <= y <= image_height):
            warnings.append(ValidationWarning(
                annotation_id=annotation.id,
                severity='warning',
                code='POLYGON_POINT_OUT_OF_BOUNDS',
                message=f'Polygon point {i} ({x}, {y}) is outside the image'
            ))
            break  # Only report first out-of-bounds point

    return warnings


@dataclass
class ProjectValidationReport:
    """Validation report for entire project."""
    total_annotations: int
    total_images: int
    errors: list[ValidationWarning]
    warnings: list[ValidationWarning]
    info: list[ValidationWarning]

    @property
    def is_valid(self) -> bool:
        """Project is valid if there are no errors."""
        return len(self.errors) == 0

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def summary(self) -> str:
        """Get a summary string."""
        return (
            f"Validation Report:\n"
            f"  Images: {self.total_images}\n"
            f"  Annotations: {self.total_annotations}\n"
            f"  Errors: {self.error_count}\n"
            f"  Warnings: {self.warning_count}\n"
            f"  Valid: {'Yes' if self.is_valid else 'No'}"
        )


def _project_findings(store, project: Project, image_ids: set[int]) -> list[ValidationWarning]:
    findings = []

    gap = find_index_gap(store.list_classes(project.id))
    if gap is not None:
        expected, found = gap
        findings.append(ValidationWarning(
            annotation_id=0,
            severity='error',
            code='CLASS_INDEX_GAP',
            message=f'Class indices are not sequential: expected {expected}, found {found}'
        ))

    roles = {role.image_id: role.role_type for role in store.list_roles(project.id)}
    missing = image_ids - roles.keys()
    if missing:
        findings.append(ValidationWarning(
            annotation_id=0,
            severity='warning',
            code='MISSING_ROLE',
            message=f'{len(missing)} images have no role record'
        ))

    unassigned = sum(1 for image_id in image_ids if roles.get(image_id) == RoleType.NONE)
    if unassigned:
        findings.append(ValidationWarning(
            annotation_id=0,
            severity='info',
            code='UNASSIGNED_ROLE',
            message=f'{unassigned} images are not assigned to Train, Validation or Test'
        ))
    return findings


def validate_project(store, project: Project) -> ProjectValidationReport:
    """
    Validate all annotations in a project.

    Args:
        store: The ProjectStore instance
        project: The project to validate

    Returns:
        ProjectValidationReport with all issues found
    """
    images = store.list_images(project.dataset_id)
    annotations = store.annotations_by_image(project.id)

    all_warnings = []
    total_annotations = 0

    for image in images:
        image_annotations = annotations.get(image.id, [])
        total_annotations += len(image_annotations)

        for ann in image_annotations:
            all_warnings.extend(validate_annotation(ann, project.task_type, image.width, image.height))

    all_warnings.extend(_project_findings(store, project, {image.id for image in images}))

    # Separate by severity
    errors = [w for w in all_warnings if w.severity == 'error']
    warnings = [w for w in all_warnings if w.severity == 'warning']
    info = [w for w in all_warnings if w.severity == 'info']

    return ProjectValidationReport(
        total_annotations=total_annotations,
        total_images=len(images),
        errors=errors,
        warnings=warnings,
        info=info,
    )
