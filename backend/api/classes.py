"""
Classes API endpoints
"""

from fastapi import APIRouter
from pydantic import BaseModel
from typing import Optional

from labelbench import taxonomy
from labelbench.errors import NotFoundError
from labelbench.models import ProjectClass
from backend.api.projects import get_store, get_project, write_transaction

router = APIRouter()


class ClassResponse(BaseModel):
    id: int
    project_id: int
    class_idx: int
    name: str
    color: str

    @classmethod
    def from_class(cls, project_class: ProjectClass):
        return cls(
            id=project_class.id,
            project_id=project_class.project_id,
            class_idx=project_class.class_idx,
            name=project_class.name,
            color=project_class.color_hex,
        )


class CreateClassRequest(BaseModel):
    name: str
    color: Optional[str] = None  # If not provided, auto-assign


class UpdateClassRequest(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None


@router.get("", response_model=list[ClassResponse])
async def list_classes():
    """List all classes in the current project ordered by index."""
    store = get_store()
    project = get_project()
    return [ClassResponse.from_class(c) for c in taxonomy.list_classes(store, project.id)]


def _require_class(store, class_id: int) -> ProjectClass:
    project_class = store.get_class_by_id(class_id)
    if project_class is None or project_class.project_id != get_project().id:
        raise NotFoundError(f"Class {class_id} not found")
    return project_class


@router.get("/{class_id}", response_model=ClassResponse)
async def get_class(class_id: int):
    """Get class by ID."""
    return ClassResponse.from_class(_require_class(get_store(), class_id))


@router.post("", response_model=list[ClassResponse])
async def create_class(request: CreateClassRequest):
    """Append a class and return the whole taxonomy."""
    project = get_project()
    with write_transaction() as store:
        classes = taxonomy.create_class(store, project.id, request.name, request.color)
    return [ClassResponse.from_class(c) for c in classes]


@router.put("/{class_id}", response_model=ClassResponse)
async def update_class(class_id: int, request: UpdateClassRequest):
    """Rename or recolor a class."""
    with write_transaction() as store:
        _require_class(store, class_id)
        project_class = taxonomy.update_class(store, class_id, request.name, request.color)
    return ClassResponse.from_class(project_class)


@router.delete("/{class_id}", response_model=list[ClassResponse])
async def delete_class(class_id: int):
    """Delete a class with its annotations and return the reindexed taxonomy."""
    with write_transaction() as store:
        _require_class(store, class_id)
        remaining = taxonomy.delete_class(store, class_id)
    return [ClassResponse.from_class(c) for c in remaining]
