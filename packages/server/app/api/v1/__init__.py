"""
API v1 Router

All org-scoped endpoints are prefixed with /orgs/{orgId}.
"""

from fastapi import APIRouter
from . import invitations, leads, organizations, pipeline, users

router = APIRouter()

# Non-org-scoped routes: onboarding, org list/create/switch, profiles, invitation tokens
router.include_router(organizations.router_global)
router.include_router(users.router_global)
router.include_router(invitations.router_global)

# Org-scoped routes
router.include_router(organizations.router_scoped, prefix="/orgs/{orgId}", tags=["Organizations"])
router.include_router(users.router_scoped, prefix="/orgs/{orgId}/users", tags=["Users"])
router.include_router(
    invitations.router_scoped, prefix="/orgs/{orgId}/invitations", tags=["Invitations"]
)
router.include_router(
    pipeline.router, prefix="/orgs/{orgId}/pipeline/steps", tags=["Pipeline"]
)
router.include_router(
    pipeline.tags_router, prefix="/orgs/{orgId}/pipeline/tags", tags=["Pipeline"]
)
router.include_router(leads.router, prefix="/orgs/{orgId}/leads", tags=["Leads"])


@router.get("/", tags=["API"])
async def api_root():
    """API root — returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/onboarding",
            "/orgs",
            "/orgs/switch",
            "/orgs/{orgId}/members",
            "/orgs/{orgId}/users",
            "/orgs/{orgId}/users/by-email",
            "/orgs/{orgId}/invitations",
            "/orgs/{orgId}/pipeline/steps",
            "/orgs/{orgId}/pipeline/tags",
            "/orgs/{orgId}/leads",
            "/users/me",
            "/invitations/verify",
            "/invitations/accept",
        ],
    }
