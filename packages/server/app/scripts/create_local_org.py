"""
Script to create an organization and its admin for local testing, and print
an identity token for that admin (the local stand-in for the identity
provider).

Usage:
    python -m app.scripts.create_local_org --email admin@acme.com --name Acme
"""

import argparse
import asyncio
import uuid

from app.core.auth import Principal, find_profile, issue_identity_token
from app.core.database import init_db, session_scope
from app.services.organizations import complete_onboarding
from leadflow_shared.schemas.organizations import OnboardingRequest


async def create_org(email: str, name: str, uid: str) -> None:
    await init_db()
    principal = Principal(uid=uid, email=email.lower())

    async with session_scope() as session:
        if await find_profile(uid, session):
            print(f"Profile {uid} already exists.")
        else:
            org, _ = await complete_onboarding(principal, OnboardingRequest(name=name), session)
            print(f"Created organization {org.name} ({org.id}) with admin {principal.email}.")

    print("Identity token:")
    print(issue_identity_token(principal.uid, principal.email))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a local organization and admin.")
    parser.add_argument("--email", required=True, help="Email address of the admin")
    parser.add_argument("--name", required=True, help="Organization name")
    parser.add_argument("--uid", default=None, help="External identity (random if omitted)")

    args = parser.parse_args()

    asyncio.run(create_org(args.email, args.name, args.uid or f"local-{uuid.uuid4()}"))
