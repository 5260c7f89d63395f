"""
Roles API endpoints
"""

from typing import Optional

import numpy as np
from fastapi import APIRouter
from pydantic import BaseModel

from labelbench.partition import get_roles, split_project_roles, update_roles
from backend.api.projects import get_store, get_project, write_transaction
from backend.config import DEFAULT_TRAIN_RATIO, DEFAULT_VALIDATION_RATIO, DEFAULT_TEST_RATIO

router = APIRouter()


class RoleResponse(BaseModel):
    image_id: int
    role: int
    role_name: str


class SplitRequest(BaseModel):
    train_ratio: float = DEFAULT_TRAIN_RATIO
    validation_ratio: float = DEFAULT_VALIDATION_RATIO
    test_ratio: float = DEFAULT_TEST_RATIO
    seed: Optional[int] = None


class SplitResponse(BaseModel):
    train_count: int
    validation_count: int
    test_count: int
    skipped_count: int
    total_count: int
    message: str


class UpdateRolesRequest(BaseModel):
    image_ids: list[int]
    role: int


class UpdateRolesResponse(BaseModel):
    updated_count: int
    created_count: int
    redirected_ids: list[int]
    failed_ids: list[int]
    messages: list[str]


@router.get("", response_model=list[RoleResponse])
async def list_roles():
    """List the role of every image in the current project."""
    roles = get_roles(get_store(), get_project())
    return [
        RoleResponse(image_id=image_id, role=int(role), role_name=role.display_name)
        for image_id, role in roles.items()
    ]


@router.post("/split", response_model=SplitResponse)
async def split_roles(request: SplitRequest):
    """Randomly assign Train / Validation / Test to annotated images."""
    project = get_project()
    rng = np.random.default_rng(request.seed)
    with write_transaction() as store:
        result = split_project_roles(
            store, project,
            request.train_ratio, request.validation_ratio, request.test_ratio,
            rng=rng,
        )
    return SplitResponse(
        train_count=result.train_count,
        validation_count=result.validation_count,
        test_count=result.test_count,
        skipped_count=result.skipped_count,
        total_count=result.total_count,
        message=result.message,
    )


@router.put("", response_model=UpdateRolesResponse)
async def set_roles(request: UpdateRolesRequest):
    """Set one role on a list of images."""
    project = get_project()
    with write_transaction() as store:
        result = update_roles(store, project, request.image_ids, request.role)
    return UpdateRolesResponse(
        updated_count=result.updated_count,
        created_count=result.created_count,
        redirected_ids=result.redirected_ids,
        failed_ids=result.failed_ids,
        messages=result.messages,
    )
