"""
Labeling API endpoints
"""

from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from labelbench.labeling import assign_class_to_images, change_annotation_class
from backend.api.projects import get_project, write_transaction

router = APIRouter()


class AssignClassRequest(BaseModel):
    image_ids: list[int]
    class_id: Optional[int] = None  # None clears the images' annotations


class AssignClassResponse(BaseModel):
    updated_count: int
    created_count: int
    deleted_count: int
    failed_ids: list[int]
    messages: list[str]


class ChangeClassRequest(BaseModel):
    annotation_ids: list[int]
    class_id: int


@router.put("/assign", response_model=AssignClassResponse)
async def assign_class(request: AssignClassRequest):
    """Give a set of images one class."""
    project = get_project()
    with write_transaction() as store:
        result = assign_class_to_images(store, project, request.image_ids, request.class_id)
    return AssignClassResponse(
        updated_count=result.updated_count,
        created_count=result.created_count,
        deleted_count=result.deleted_count,
        failed_ids=result.failed_ids,
        messages=result.messages,
    )


@router.put("/annotations")
async def change_class(request: ChangeClassRequest):
    """Move annotations to another class."""
    with write_transaction() as store:
        updated = change_annotation_class(store, request.annotation_ids, request.class_id)
    return {"updated_count": updated}
