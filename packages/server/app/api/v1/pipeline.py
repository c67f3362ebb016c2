"""
Pipeline API endpoints.

GET    /api/v1/orgs/{orgId}/pipeline/steps           — List steps
POST   /api/v1/orgs/{orgId}/pipeline/steps           — Create a step
POST   /api/v1/orgs/{orgId}/pipeline/steps/bulk      — Create several steps
PUT    /api/v1/orgs/{orgId}/pipeline/steps/order     — Reorder steps
PUT    /api/v1/orgs/{orgId}/pipeline/steps/{stepId}  — Update a step
DELETE /api/v1/orgs/{orgId}/pipeline/steps/{stepId}  — Delete a step

GET    /api/v1/orgs/{orgId}/pipeline/tags           — List tags
POST   /api/v1/orgs/{orgId}/pipeline/tags           — Create a tag
PUT    /api/v1/orgs/{orgId}/pipeline/tags/{tagId}   — Update a tag
DELETE /api/v1/orgs/{orgId}/pipeline/tags/{tagId}   — Delete a tag
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedMember, require_permission
from app.core.database import get_session
from app.services import pipeline as pipeline_service
from leadflow_shared.schemas.common import MessageResponse
from leadflow_shared.schemas.pipeline import (
    PipelineReorderRequest,
    PipelineStepBulkCreate,
    PipelineStepCreate,
    PipelineStepListResponse,
    PipelineStepRead,
    PipelineStepUpdate,
    PipelineTagCreate,
    PipelineTagListResponse,
    PipelineTagRead,
    PipelineTagUpdate,
)

router = APIRouter()
tags_router = APIRouter()


def _list_response(steps) -> PipelineStepListResponse:
    return PipelineStepListResponse(
        data=[PipelineStepRead.model_validate(step) for step in steps]
    )


@router.get("", response_model=PipelineStepListResponse)
async def list_steps(
    member: AuthenticatedMember = Depends(require_permission("pipeline", "read")),
    session: AsyncSession = Depends(get_session),
):
    return _list_response(await pipeline_service.list_steps(member.org_id, session))


@router.post("", response_model=PipelineStepRead, status_code=201)
async def create_step(
    body: PipelineStepCreate,
    member: AuthenticatedMember = Depends(require_permission("pipeline", "create")),
    session: AsyncSession = Depends(get_session),
):
    step = await pipeline_service.create_step(member.org_id, body, member.email, session)
    return PipelineStepRead.model_validate(step)


@router.post("/bulk", response_model=PipelineStepListResponse, status_code=201)
async def create_steps_bulk(
    body: PipelineStepBulkCreate,
    member: AuthenticatedMember = Depends(require_permission("pipeline", "create")),
    session: AsyncSession = Depends(get_session),
):
    steps = await pipeline_service.create_steps_bulk(
        member.org_id, body.steps, member.email, session
    )
    return _list_response(steps)


@router.put("/order", response_model=PipelineStepListResponse)
async def reorder_steps(
    body: PipelineReorderRequest,
    member: AuthenticatedMember = Depends(require_permission("pipeline", "manage_stages")),
    session: AsyncSession = Depends(get_session),
):
    steps = await pipeline_service.reorder_steps(member.org_id, body.step_ids, session)
    return _list_response(steps)


@router.put("/{stepId}", response_model=PipelineStepRead)
async def update_step(
    stepId: uuid.UUID,
    body: PipelineStepUpdate,
    member: AuthenticatedMember = Depends(require_permission("pipeline", "update")),
    session: AsyncSession = Depends(get_session),
):
    step = await pipeline_service.update_step(member.org_id, stepId, body, session)
    return PipelineStepRead.model_validate(step)


@router.delete("/{stepId}", response_model=MessageResponse)
async def delete_step(
    stepId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_permission("pipeline", "delete")),
    session: AsyncSession = Depends(get_session),
):
    await pipeline_service.delete_step(member.org_id, stepId, session)
    return MessageResponse(message="Pipeline step deleted")


@tags_router.get("", response_model=PipelineTagListResponse)
async def list_tags(
    member: AuthenticatedMember = Depends(require_permission("pipeline", "read")),
    session: AsyncSession = Depends(get_session),
):
    """Active tags, newest first."""
    tags = await pipeline_service.list_tags(member.org_id, session)
    return PipelineTagListResponse(data=[PipelineTagRead.model_validate(tag) for tag in tags])


@tags_router.post("", response_model=PipelineTagRead, status_code=201)
async def create_tag(
    body: PipelineTagCreate,
    member: AuthenticatedMember = Depends(require_permission("pipeline", "create")),
    session: AsyncSession = Depends(get_session),
):
    tag = await pipeline_service.create_tag(member.org_id, body, member.email, session)
    return PipelineTagRead.model_validate(tag)


@tags_router.put("/{tagId}", response_model=PipelineTagRead)
async def update_tag(
    tagId: uuid.UUID,
    body: PipelineTagUpdate,
    member: AuthenticatedMember = Depends(require_permission("pipeline", "update")),
    session: AsyncSession = Depends(get_session),
):
    tag = await pipeline_service.update_tag(member.org_id, tagId, body, session)
    return PipelineTagRead.model_validate(tag)


@tags_router.delete("/{tagId}", response_model=MessageResponse)
async def delete_tag(
    tagId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_permission("pipeline", "delete")),
    session: AsyncSession = Depends(get_session),
):
    await pipeline_service.delete_tag(member.org_id, tagId, session)
    return MessageResponse(message="Pipeline tag deleted")
