"""
Lead service — audience records scoped by the caller's access to ``leads``.

``AccessScope.ALL`` sees the whole organization; ``AccessScope.OWN`` only
records it created.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedMember
from app.core.errors import NotFound, PermissionDenied, ValidationFailed
from app.models.base import utcnow
from app.models.lead import Lead
from leadflow_shared.schemas.leads import KNOWN_LEAD_FIELDS, LeadCreate, LeadUpdate
from leadflow_shared.schemas.permissions import AccessScope

log = structlog.get_logger()


def _scoped(query, member: AuthenticatedMember):
    scope = member.scope("leads")
    if scope == AccessScope.NONE:
        raise PermissionDenied()
    query = query.where(Lead.organization_id == member.org_id)
    if scope == AccessScope.OWN:
        query = query.where(Lead.created_by == member.email)
    return query


def _clean(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


async def create_leads(
    member: AuthenticatedMember,
    items: list[LeadCreate],
    session: AsyncSession,
) -> int:
    """Insert a batch; rows with no content are dropped."""
    rows = [item for item in items if item.has_content()]
    if not rows:
        raise ValidationFailed("No valid leads found in the data")

    now = utcnow()
    for item in rows:
        values = {name: _clean(getattr(item, name)) for name in KNOWN_LEAD_FIELDS}
        session.add(
            Lead(
                organization_id=member.org_id,
                stage=_clean(item.stage),
                notes=item.notes,
                extra=item.extra,
                created_by=member.email,
                stage_updated_at=now if _clean(item.stage) else None,
                **values,
            )
        )
    await session.flush()

    log.info(
        "leads.created",
        org_id=str(member.org_id),
        by=member.uid,
        inserted=len(rows),
        dropped=len(items) - len(rows),
    )
    return len(rows)


async def list_leads(member: AuthenticatedMember, session: AsyncSession) -> list[Lead]:
    result = await session.execute(
        _scoped(select(Lead), member).order_by(Lead.created_at.desc())
    )
    return list(result.scalars().all())


async def _get_lead(
    member: AuthenticatedMember, lead_id: uuid.UUID, session: AsyncSession
) -> Lead:
    result = await session.execute(_scoped(select(Lead), member).where(Lead.id == lead_id))
    lead = result.scalar_one_or_none()
    if not lead:
        raise NotFound("Lead not found")
    return lead


async def update_lead(
    member: AuthenticatedMember,
    lead_id: uuid.UUID,
    data: LeadUpdate,
    session: AsyncSession,
) -> Lead:
    lead = await _get_lead(member, lead_id, session)
    updates = data.model_dump(exclude_unset=True)

    if "extra" in updates:
        lead.extra = updates.pop("extra") or {}
    for field, value in updates.items():
        value = _clean(value) if field != "notes" else value
        if field == "stage" and value != lead.stage:
            lead.stage_updated_at = utcnow()
        setattr(lead, field, value)

    lead.updated_at = utcnow()
    session.add(lead)
    await session.flush()

    log.info("lead.updated", org_id=str(member.org_id), lead_id=str(lead_id), by=member.uid)
    return lead


async def delete_lead(
    member: AuthenticatedMember, lead_id: uuid.UUID, session: AsyncSession
) -> None:
    lead = await _get_lead(member, lead_id, session)
    await session.delete(lead)
    await session.flush()
    log.info("lead.deleted", org_id=str(member.org_id), lead_id=str(lead_id), by=member.uid)


async def delete_leads(
    member: AuthenticatedMember, ids: list[uuid.UUID], session: AsyncSession
) -> int:
    """Delete the given leads that fall inside the caller's scope."""
    result = await session.execute(_scoped(select(Lead.id), member).where(Lead.id.in_(ids)))
    matched = list(result.scalars().all())
    if matched:
        await session.execute(delete(Lead).where(Lead.id.in_(matched)))
        await session.flush()

    log.info("leads.deleted", org_id=str(member.org_id), by=member.uid, deleted=len(matched))
    return len(matched)
