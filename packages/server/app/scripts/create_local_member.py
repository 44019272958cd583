"""
Script to mirror a local user and membership and print a session token for it.

Useful against a development database when the identity provider is not
reachable: the token can be sent as ``Authorization: Bearer <token>``.
"""

import argparse
import asyncio

from app.core.auth import create_session_token
from app.core.database import get_session_context, init_db
from app.services import memberships as membership_service
from fleetfusion_shared.schemas.abac import SystemRole


async def create_member(user_id: str, email: str, org_id: str, org_name: str, role: str) -> str:
    await init_db()

    async with get_session_context() as session:
        await membership_service.ensure_organization(org_id, org_name, session)
        await membership_service.upsert_user(
            session,
            user_id=user_id,
            email=email,
            is_active=True,
            onboarding_complete=True,
        )
        await membership_service.upsert_membership(user_id, org_id, role, session)

    token, _ = create_session_token(user_id, org_id, role, email=email)
    return token


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a local organization member.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--user-id", default="user_local", help="Identity-provider user id")
    parser.add_argument("--org-id", default="org_local", help="Organization id")
    parser.add_argument("--org-name", default="Local Fleet", help="Organization name")
    parser.add_argument(
        "--role",
        default=SystemRole.ADMIN.value,
        choices=[role.value for role in SystemRole],
        help="Role to grant",
    )

    args = parser.parse_args()

    token = asyncio.run(
        create_member(args.user_id, args.email, args.org_id, args.org_name, args.role)
    )
    print(f"Created {args.email} as {args.role} in {args.org_id}.")
    print(token)
