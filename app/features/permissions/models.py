"""
Role and role assignment models.

A role is a named bundle of access rights (permission strings) of one
role_type. Assigning a role to a user binds it to a scope instance:

    organization role  -> organization only
    environment role   -> env_type
    project role       -> project_id
    branch role        -> branch_id

Flattening assignments into grants happens in ``db_provider``.
"""
from sqlalchemy import String, ForeignKey, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid


class Role(Base, TimestampMixin):
    """
    Organization-owned role.

    Examples: Owner (org:owner:admin), Branch auth admin (branch:auth:admin)
    """
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # organization | environment | project | branch
    role_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    # Permission strings, e.g. ["branch:auth:admin", "branch:settings:*"]
    access_rights: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    assignments: Mapped[list["RoleAssignment"]] = relationship(
        "RoleAssignment",
        back_populates="role",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r}, type={self.role_type}, org_id={self.organization_id})>"


class RoleAssignment(Base, TimestampMixin):
    """A role given to a user at one scope instance."""
    __tablename__ = "role_assignments"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    role_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Scope binding; at most one is set, matching the role's role_type
    env_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    project_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    branch_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("branches.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    role: Mapped["Role"] = relationship("Role", back_populates="assignments", lazy="selectin")

    def __repr__(self) -> str:
        return f"<RoleAssignment(id={self.id}, user_id={self.user_id}, role_id={self.role_id})>"
