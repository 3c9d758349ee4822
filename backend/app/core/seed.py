"""Seed one login per approver role so a fresh database can route requests.

Idempotent: users are matched by email and never overwritten.
Run: python -m app.core.seed
"""
import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import hash_password
from app.db.session import AsyncSessionLocal
from app.models.user import User
from app.services.role_sequence import ApprovalFlowTable, flow_table_from_settings

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD = "changeme123"
EMAIL_DOMAIN = "example.com"


def default_users(flows: ApprovalFlowTable) -> list[tuple[str, str, str]]:
    """(email, name, role) for an admin, a sample employee and every approver role."""
    users = [
        (f"admin@{EMAIL_DOMAIN}", "Admin User", "Admin"),
        (f"employee@{EMAIL_DOMAIN}", "Sample Employee", "Employee"),
    ]
    for role in sorted(flows.approver_roles):
        local_part = role.lower().replace(" ", ".")
        users.append((f"{local_part}@{EMAIL_DOMAIN}", role, role))
    return users


async def seed_users(db: AsyncSession, flows: ApprovalFlowTable | None = None) -> int:
    """Insert missing default users. Returns how many were created."""
    created = 0
    for email, name, role in default_users(flows or flow_table_from_settings()):
        existing = await db.execute(select(User).where(User.email == email))
        if existing.scalars().first() is not None:
            logger.info("User already exists: %s, skipping", email)
            continue
        db.add(User(
            email=email,
            name=name,
            password_hash=hash_password(DEFAULT_PASSWORD),
            role=role,
            is_active=True,
        ))
        created += 1
        logger.info("Seeded user: %s (%s)", email, role)

    await db.commit()
    return created


async def run_seed() -> None:
    async with AsyncSessionLocal() as db:
        created = await seed_users(db)
    logger.info("Seeding complete: %d user(s) created.", created)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run_seed())
