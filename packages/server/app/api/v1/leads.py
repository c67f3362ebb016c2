"""
Lead API endpoints.

GET    /api/v1/orgs/{orgId}/leads              — List leads in scope
POST   /api/v1/orgs/{orgId}/leads              — Insert a batch of leads
PATCH  /api/v1/orgs/{orgId}/leads/{leadId}     — Update a lead
DELETE /api/v1/orgs/{orgId}/leads/{leadId}     — Delete a lead
POST   /api/v1/orgs/{orgId}/leads/bulk-delete  — Delete several leads
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedMember, require_permission
from app.core.database import get_session
from app.services import leads as lead_service
from leadflow_shared.schemas.leads import (
    LeadBatchCreate,
    LeadBatchCreateResponse,
    LeadBulkDeleteRequest,
    LeadDeleteResponse,
    LeadListResponse,
    LeadRead,
    LeadUpdate,
)

router = APIRouter()


@router.get("", response_model=LeadListResponse)
async def list_leads(
    member: AuthenticatedMember = Depends(require_permission("leads", "read")),
    session: AsyncSession = Depends(get_session),
):
    """Leads visible to the caller: the whole org, or only their own uploads."""
    leads = await lead_service.list_leads(member, session)
    return LeadListResponse(
        data=[LeadRead.model_validate(lead) for lead in leads],
        scope=member.scope("leads").value,
    )


@router.post("", response_model=LeadBatchCreateResponse, status_code=201)
async def create_leads(
    body: LeadBatchCreate,
    member: AuthenticatedMember = Depends(require_permission("leads", "create")),
    session: AsyncSession = Depends(get_session),
):
    count = await lead_service.create_leads(member, body.leads, session)
    return LeadBatchCreateResponse(inserted_count=count)


@router.post("/bulk-delete", response_model=LeadDeleteResponse)
async def delete_leads(
    body: LeadBulkDeleteRequest,
    member: AuthenticatedMember = Depends(require_permission("leads", "delete")),
    session: AsyncSession = Depends(get_session),
):
    count = await lead_service.delete_leads(member, body.ids, session)
    return LeadDeleteResponse(deleted_count=count)


@router.patch("/{leadId}", response_model=LeadRead)
async def update_lead(
    leadId: uuid.UUID,
    body: LeadUpdate,
    member: AuthenticatedMember = Depends(require_permission("leads", "update")),
    session: AsyncSession = Depends(get_session),
):
    lead = await lead_service.update_lead(member, leadId, body, session)
    return LeadRead.model_validate(lead)


@router.delete("/{leadId}", response_model=LeadDeleteResponse)
async def delete_lead(
    leadId: uuid.UUID,
    member: AuthenticatedMember = Depends(require_permission("leads", "delete")),
    session: AsyncSession = Depends(get_session),
):
    await lead_service.delete_lead(member, leadId, session)
    return LeadDeleteResponse(deleted_count=1)
