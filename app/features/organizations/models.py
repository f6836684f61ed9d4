"""
Organization, project and branch models.

Organizations own projects, projects own branches. These tables back the
project and branch directories that the permission engine joins grants
against.
"""
from sqlalchemy import String, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid


class Organization(Base, TimestampMixin):
    """
    Organization (tenant) owning projects.

    env_types lists the environment types (e.g. "production", "staging")
    that environment-scoped role assignments may bind to.
    """
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    env_types: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    projects: Mapped[list["Project"]] = relationship(
        "Project",
        back_populates="organization",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, slug={self.slug!r})>"


class Project(Base, TimestampMixin):
    """A database project inside an organization."""
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    env_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    organization: Mapped["Organization"] = relationship("Organization", back_populates="projects")
    branches: Mapped[list["Branch"]] = relationship(
        "Branch",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, org_id={self.organization_id}, name={self.name!r})>"


class Branch(Base, TimestampMixin):
    """A database branch inside a project."""
    __tablename__ = "branches"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    project_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    project: Mapped["Project"] = relationship("Project", back_populates="branches")

    def __repr__(self) -> str:
        return f"<Branch(id={self.id}, project_id={self.project_id}, name={self.name!r})>"
