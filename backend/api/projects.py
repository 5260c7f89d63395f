"""
Projects API endpoints
"""

import os
import threading
from contextlib import contextmanager
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Iterator, Optional

from labelbench.db import DB_FILENAME
from labelbench.models import Project, ProjectType
from labelbench.store import ProjectStore

router = APIRouter()

# Store the current project state
_current_store: Optional[ProjectStore] = None
_current_project: Optional[Project] = None

# One mutating operation at a time
_write_lock = threading.Lock()


class CreateProjectRequest(BaseModel):
    project_dir: str
    image_dir: str
    name: str
    task_type: str = ProjectType.CLASSIFICATION.wire_name


class ProjectResponse(BaseModel):
    id: int
    name: str
    task_type: str
    root_dir: str
    image_count: int

    @classmethod
    def from_project(cls, project: Project, store: ProjectStore):
        count = store.get_image_count(project.dataset_id)
        return cls(
            id=project.id,
            name=project.name,
            task_type=project.task_type.wire_name,
            root_dir=project.root_dir,
            image_count=count,
        )


def get_store() -> ProjectStore:
    """Get the current project store."""
    if _current_store is None:
        raise HTTPException(status_code=400, detail="No project loaded")
    return _current_store


def get_project() -> Project:
    """Get the current project."""
    if _current_project is None:
        raise HTTPException(status_code=400, detail="No project loaded")
    return _current_project


@contextmanager
def write_transaction() -> Iterator[ProjectStore]:
    """Serialize a mutating request and run it as one store transaction."""
    store = get_store()
    with _write_lock:
        with store.transaction():
            yield store


def _activate(project: Project) -> ProjectResponse:
    global _current_store, _current_project

    if _current_store:
        _current_store.close()
    _current_store = ProjectStore(project.db_path)
    _current_project = project
    return ProjectResponse.from_project(project, _current_store)


@router.post("", response_model=ProjectResponse)
async def create_project(request: CreateProjectRequest):
    """Create a new project."""
    try:
        task_type = ProjectType.from_wire_name(request.task_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not os.path.isdir(request.image_dir):
        raise HTTPException(status_code=404, detail="Image directory not found")

    project = ProjectStore.create_project(
        project_dir=request.project_dir,
        image_dir=request.image_dir,
        name=request.name,
        task_type=task_type,
    )
    return _activate(project)


class OpenProjectRequest(BaseModel):
    project_dir: str


@router.post("/open", response_model=ProjectResponse)
async def open_project(request: OpenProjectRequest):
    """Open an existing project."""
    if not os.path.exists(request.project_dir):
        raise HTTPException(status_code=404, detail="Project directory not found")

    db_path = os.path.join(request.project_dir, DB_FILENAME)
    if not os.path.exists(db_path):
        raise HTTPException(status_code=404, detail="Project database not found")

    project = ProjectStore.load_project(request.project_dir)
    return _activate(project)


@router.get("/current", response_model=Optional[ProjectResponse])
async def get_current_project():
    """Get the currently loaded project."""
    if _current_project is None:
        return None
    return ProjectResponse.from_project(_current_project, _current_store)


@router.post("/close")
async def close_project():
    """Close the current project."""
    global _current_store, _current_project

    if _current_store:
        _current_store.close()
    _current_store = None
    _current_project = None
    return {"status": "closed"}
