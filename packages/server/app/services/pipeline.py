"""
Pipeline service — ordered, named stages per organization, plus free-form tags.

Active steps always carry a contiguous 1-based ``order``.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import Conflict, NotFound, ValidationFailed
from app.models.base import utcnow
from app.models.lead import Lead
from app.models.pipeline_step import PipelineStep
from app.models.pipeline_tag import PipelineTag
from leadflow_shared.schemas.pipeline import (
    PipelineStepBase,
    PipelineStepCreate,
    PipelineStepUpdate,
    PipelineTagCreate,
    PipelineTagUpdate,
)

log = structlog.get_logger()


async def list_steps(org_id: uuid.UUID, session: AsyncSession) -> list[PipelineStep]:
    result = await session.execute(
        select(PipelineStep)
        .where(
            PipelineStep.organization_id == org_id,
            PipelineStep.is_active == True,  # noqa: E712
        )
        .order_by(PipelineStep.order)
    )
    return list(result.scalars().all())


async def _next_order(org_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.max(PipelineStep.order)).where(
            PipelineStep.organization_id == org_id,
            PipelineStep.is_active == True,  # noqa: E712
        )
    )
    return (result.scalar_one_or_none() or 0) + 1


async def get_step(org_id: uuid.UUID, step_id: uuid.UUID, session: AsyncSession) -> PipelineStep:
    step = await session.get(PipelineStep, step_id)
    if not step or step.organization_id != org_id or not step.is_active:
        raise NotFound("Pipeline step not found")
    return step


def _new_step(org_id: uuid.UUID, data: PipelineStepBase, order: int, creator: str) -> PipelineStep:
    return PipelineStep(
        organization_id=org_id,
        title=data.title,
        description=data.description,
        color=data.color,
        bg_color=data.bg_color,
        border_color=data.border_color,
        order=order,
        created_by=creator,
    )


async def create_step(
    org_id: uuid.UUID,
    data: PipelineStepCreate,
    creator: str,
    session: AsyncSession,
) -> PipelineStep:
    """Append a step after the current last one."""
    step = _new_step(org_id, data, await _next_order(org_id, session), creator)
    session.add(step)
    await session.flush()

    log.info("pipeline.step_created", org_id=str(org_id), step_id=str(step.id), order=step.order)
    return step


async def create_steps_bulk(
    org_id: uuid.UUID,
    steps: list[PipelineStepBase],
    creator: str,
    session: AsyncSession,
) -> list[PipelineStep]:
    """Append several steps in the given order; blank titles are skipped."""
    kept = [data for data in steps if data.title]
    if not kept:
        raise ValidationFailed("At least one step with a title is required")

    order = await _next_order(org_id, session)
    created = []
    for offset, data in enumerate(kept):
        step = _new_step(org_id, data, order + offset, creator)
        session.add(step)
        created.append(step)
    await session.flush()

    log.info("pipeline.steps_created", org_id=str(org_id), count=len(created))
    return created


async def update_step(
    org_id: uuid.UUID,
    step_id: uuid.UUID,
    data: PipelineStepUpdate,
    session: AsyncSession,
) -> PipelineStep:
    step = await get_step(org_id, step_id, session)
    old_title = step.title

    updates = data.model_dump(exclude_unset=True)
    if updates.get("title") is None:
        updates.pop("title", None)
    if "description" in updates:
        updates["description"] = (updates["description"] or "").strip()
    for field, value in updates.items():
        setattr(step, field, value)

    step.updated_at = utcnow()
    session.add(step)

    if step.title != old_title:
        # Leads reference stages by title.
        await session.execute(
            update(Lead)
            .where(Lead.organization_id == org_id, Lead.stage == old_title)
            .values(stage=step.title)
        )
    await session.flush()

    log.info("pipeline.step_updated", org_id=str(org_id), step_id=str(step_id))
    return step


async def reorder_steps(
    org_id: uuid.UUID,
    step_ids: list[uuid.UUID],
    session: AsyncSession,
) -> list[PipelineStep]:
    """Set the order to match step_ids, which must name every active step once."""
    steps = await list_steps(org_id, session)
    by_id = {step.id: step for step in steps}
    if len(step_ids) != len(set(step_ids)) or set(step_ids) != set(by_id):
        raise ValidationFailed("step_ids must list every pipeline step exactly once")

    now = utcnow()
    for index, step_id in enumerate(step_ids):
        step = by_id[step_id]
        step.order = index + 1
        step.updated_at = now
        session.add(step)
    await session.flush()

    log.info("pipeline.reordered", org_id=str(org_id), count=len(step_ids))
    return sorted(steps, key=lambda step: step.order)


async def delete_step(
    org_id: uuid.UUID,
    step_id: uuid.UUID,
    session: AsyncSession,
) -> None:
    """Soft-delete a step, renumber the rest, and restage its leads."""
    step = await get_step(org_id, step_id, session)
    steps = await list_steps(org_id, session)
    if len(steps) <= 1:
        raise Conflict(
            "Cannot delete the last pipeline step. You must have at least one step.",
            code="LAST_PIPELINE_STEP",
        )

    now = utcnow()
    step.is_active = False
    step.updated_at = now
    session.add(step)

    remaining = [other for other in steps if other.id != step.id]
    for index, other in enumerate(remaining):
        if other.order != index + 1:
            other.order = index + 1
            other.updated_at = now
            session.add(other)

    result = await session.execute(
        update(Lead)
        .where(Lead.organization_id == org_id, Lead.stage == step.title)
        .values(stage=remaining[0].title, stage_updated_at=now)
    )
    await session.flush()

    log.info(
        "pipeline.step_deleted",
        org_id=str(org_id),
        step_id=str(step_id),
        leads_moved=result.rowcount,
    )


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

async def list_tags(org_id: uuid.UUID, session: AsyncSession) -> list[PipelineTag]:
    result = await session.execute(
        select(PipelineTag)
        .where(
            PipelineTag.organization_id == org_id,
            PipelineTag.is_active == True,  # noqa: E712
        )
        .order_by(PipelineTag.created_at.desc())
    )
    return list(result.scalars().all())


async def get_tag(org_id: uuid.UUID, tag_id: uuid.UUID, session: AsyncSession) -> PipelineTag:
    tag = await session.get(PipelineTag, tag_id)
    if not tag or tag.organization_id != org_id or not tag.is_active:
        raise NotFound("Pipeline tag not found")
    return tag


async def _ensure_unique_tag_name(
    org_id: uuid.UUID,
    name: str,
    session: AsyncSession,
    exclude: Optional[uuid.UUID] = None,
) -> None:
    """Active tag names are unique per organization, ignoring case."""
    query = select(PipelineTag.id).where(
        PipelineTag.organization_id == org_id,
        PipelineTag.is_active == True,  # noqa: E712
        func.lower(PipelineTag.name) == name.lower(),
    )
    if exclude is not None:
        query = query.where(PipelineTag.id != exclude)
    result = await session.execute(query)
    if result.first():
        raise Conflict(
            "A tag with this name already exists in your organization", code="TAG_EXISTS"
        )


async def create_tag(
    org_id: uuid.UUID,
    data: PipelineTagCreate,
    creator: str,
    session: AsyncSession,
) -> PipelineTag:
    await _ensure_unique_tag_name(org_id, data.name, session)
    tag = PipelineTag(
        organization_id=org_id,
        name=data.name,
        description=data.description,
        created_by=creator,
    )
    session.add(tag)
    await session.flush()

    log.info("pipeline.tag_created", org_id=str(org_id), tag_id=str(tag.id))
    return tag


async def update_tag(
    org_id: uuid.UUID,
    tag_id: uuid.UUID,
    data: PipelineTagUpdate,
    session: AsyncSession,
) -> PipelineTag:
    tag = await get_tag(org_id, tag_id, session)
    await _ensure_unique_tag_name(org_id, data.name, session, exclude=tag.id)

    tag.name = data.name
    tag.description = data.description
    tag.updated_at = utcnow()
    session.add(tag)
    await session.flush()

    log.info("pipeline.tag_updated", org_id=str(org_id), tag_id=str(tag_id))
    return tag


async def delete_tag(org_id: uuid.UUID, tag_id: uuid.UUID, session: AsyncSession) -> None:
    """Soft-delete; the name becomes free for a new tag."""
    tag = await get_tag(org_id, tag_id, session)
    tag.is_active = False
    tag.updated_at = utcnow()
    session.add(tag)
    await session.flush()

    log.info("pipeline.tag_deleted", org_id=str(org_id), tag_id=str(tag_id))
