"""
Annotation import / export API endpoints
"""

from typing import Any

from fastapi import APIRouter, Body
from pydantic import BaseModel

from labelbench.exporter import export_annotations
from labelbench.importer import import_annotations
from backend.api.projects import get_store, get_project, write_transaction
from backend.config import EXPORT_CREATOR

router = APIRouter()


class ImportResponse(BaseModel):
    imported_count: int
    skipped_count: int
    failed_count: int
    annotation_count: int
    failed_items: list[str]
    messages: list[str]
    category_map: dict[int, int]


@router.post("/import", response_model=ImportResponse)
async def import_document(document: dict[str, Any] = Body(...)):
    """Import an annotation document into the current project."""
    project = get_project()
    with write_transaction() as store:
        result = import_annotations(store, project, document)

    return ImportResponse(
        imported_count=result.imported_count,
        skipped_count=result.skipped_count,
        failed_count=result.failed_count,
        annotation_count=result.annotation_count,
        failed_items=result.failed_items,
        messages=result.messages,
        category_map=result.category_map,
    )


@router.get("/export")
async def export_document():
    """Export the current project as an annotation document."""
    store = get_store()
    project = get_project()
    document = export_annotations(store, project, creator=EXPORT_CREATOR)
    return document.model_dump()
