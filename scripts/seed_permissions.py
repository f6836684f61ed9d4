"""
Seed script to create an organization and its default roles.

Run this script after database initialization to create:
- The organization (if its slug is not taken yet)
- One default role per scope level, with validated access rights

Usage:
    uv run python -m scripts.seed_permissions acme "Acme Inc"
"""
import argparse
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db, init_db
from app.features.organizations.models import Organization
from app.features.permissions.catalog import validate_access_rights
from app.features.permissions.models import Role
from app.utils import get_logger


log = get_logger(__name__)


DEFAULT_ROLES = {
    "Owner": {
        "description": "Full control of the organization",
        "role_type": "organization",
        "access_rights": ["org:owner:admin"],
    },
    "Organization admin": {
        "description": "Manages members, roles and organization settings",
        "role_type": "organization",
        "access_rights": [
            "org:user:admin",
            "org:role:*",
            "org:settings:*",
            "org:projects:*",
            "org:metering:read",
        ],
    },
    "Environment developer": {
        "description": "Creates and runs projects in one environment type",
        "role_type": "environment",
        "access_rights": [
            "env:projects:read",
            "env:projects:create",
            "env:projects:write",
            "env:branches:create",
        ],
    },
    "Project admin": {
        "description": "Manages one project and its branches",
        "role_type": "project",
        "access_rights": ["project:*:*"],
    },
    "Branch admin": {
        "description": "Administers one branch",
        "role_type": "branch",
        "access_rights": ["branch:*:*"],
    },
    "Branch viewer": {
        "description": "Read-only access to one branch",
        "role_type": "branch",
        "access_rights": ["branch:*:read"],
    },
}


class InvalidRoleError(ValueError):
    """Raised when a default role carries access rights its role type rejects."""


async def seed_organization(db: AsyncSession, slug: str, name: str) -> Organization:
    """Return the organization with ``slug``, creating it if needed."""
    result = await db.execute(select(Organization).where(Organization.slug == slug))
    organization = result.scalars().first()
    if organization:
        log.debug("Organization '%s' already exists, skipping", slug)
        return organization

    organization = Organization(
        slug=slug,
        name=name,
        env_types=["production", "staging", "development"],
    )
    db.add(organization)
    await db.commit()
    await db.refresh(organization)
    log.info("Created organization: %s", slug)
    return organization


async def seed_roles(db: AsyncSession, organization: Organization) -> list[Role]:
    """
    Create the default roles of an organization.

    Args:
        db: Database session
        organization: Organization owning the roles

    Returns:
        Roles created by this call; existing roles of the same name are skipped

    Raises:
        InvalidRoleError: if a default role fails catalog validation
    """
    log.info("Creating default roles for %s...", organization.slug)

    for role_name, role_config in DEFAULT_ROLES.items():
        violations = validate_access_rights(role_config["role_type"], role_config["access_rights"])
        if violations:
            raise InvalidRoleError(f"Role '{role_name}': {'; '.join(violations)}")

    created = []
    for role_name, role_config in DEFAULT_ROLES.items():
        stmt = select(Role).where(
            Role.organization_id == organization.id,
            Role.name == role_name,
        )
        result = await db.execute(stmt)
        if result.scalars().first():
            log.debug("Role '%s' already exists, skipping", role_name)
            continue

        role = Role(
            organization_id=organization.id,
            name=role_name,
            description=role_config["description"],
            role_type=role_config["role_type"],
            access_rights=list(role_config["access_rights"]),
        )
        db.add(role)
        created.append(role)
        log.info("Created role '%s' with %d access rights", role_name, len(role.access_rights))

    await db.commit()
    log.info("Default roles created successfully")
    return created


async def main(slug: str, name: str):
    """Main function to seed an organization and its roles."""
    log.info("Starting permission seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    # Get database session
    async for db in get_db():
        try:
            organization = await seed_organization(db, slug, name)
            await seed_roles(db, organization)

            log.info("Permission seeding completed successfully!")
            log.info("Default roles:")
            for role_name, role_config in DEFAULT_ROLES.items():
                log.info("  - %s (%s): %s", role_name, role_config["role_type"], role_config["description"])

        except Exception as e:
            log.error("Error seeding permissions: %s", e, exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed an organization's default roles")
    parser.add_argument("slug", help="Organization slug")
    parser.add_argument("name", nargs="?", help="Organization display name (defaults to the slug)")
    args = parser.parse_args()
    asyncio.run(main(args.slug, args.name or args.slug))
