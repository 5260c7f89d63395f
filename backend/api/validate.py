"""
Validation API endpoints
"""

from fastapi import APIRouter
from pydantic import BaseModel

from labelbench.validate import validate_project, ValidationWarning
from backend.api.projects import get_project, get_store

router = APIRouter()


class ValidationWarningResponse(BaseModel):
    annotation_id: int
    severity: str
    code: str
    message: str

    @classmethod
    def from_warning(cls, warning: ValidationWarning):
        return cls(
            annotation_id=warning.annotation_id,
            severity=warning.severity,
            code=warning.code,
            message=warning.message,
        )


class ValidateResponse(BaseModel):
    total_images: int
    total_annotations: int
    error_count: int
    warning_count: int
    is_valid: bool
    errors: list[ValidationWarningResponse]
    warnings: list[ValidationWarningResponse]
    info: list[ValidationWarningResponse]


@router.get("", response_model=ValidateResponse)
async def validate():
    """Validate all annotations in the current project."""
    report = validate_project(get_store(), get_project())

    return ValidateResponse(
        total_images=report.total_images,
        total_annotations=report.total_annotations,
        error_count=report.error_count,
        warning_count=report.warning_count,
        is_valid=report.is_valid,
        errors=[ValidationWarningResponse.from_warning(w) for w in report.errors[:50]],  # Limit to 50 errors
        warnings=[ValidationWarningResponse.from_warning(w) for w in report.warnings[:50]],
        info=[ValidationWarningResponse.from_warning(w) for w in report.info[:50]],
    )
