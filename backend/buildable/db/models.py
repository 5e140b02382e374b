"""SQLAlchemy database models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    JSON,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


class UserModel(Base):
    """
    Database model for authenticated users.

    Users are provisioned the first time a token for them is seen. The ID
    comes directly from the auth provider's subject claim.
    """

    __tablename__ = "users"

    id = Column(String(100), primary_key=True)
    email = Column(String(255), nullable=True, index=True)
    display_name = Column(String(200), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    workspaces = relationship(
        "WorkspaceModel",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    credit_balance = relationship(
        "CreditBalanceModel",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id})>"


class WorkspaceModel(Base):
    """
    A user's project workspace.

    ``status`` is ``generating`` while a run holds the workspace, then
    ``ready`` or ``error`` depending on how the run ended.
    """

    __tablename__ = "workspaces"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(
        String(100),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default="ready")

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    user = relationship("UserModel", back_populates="workspaces")
    files = relationship(
        "WorkspaceFileModel",
        back_populates="workspace",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Workspace(id={self.id}, status={self.status})>"


class WorkspaceFileModel(Base):
    """Current content of one file in a workspace."""

    __tablename__ = "workspace_files"
    __table_args__ = (
        UniqueConstraint("workspace_id", "file_path", name="uq_workspace_file_path"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    workspace_id = Column(
        String(36),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_path = Column(String(500), nullable=False)
    content = Column(Text, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    workspace = relationship("WorkspaceModel", back_populates="files")

    def __repr__(self) -> str:
        return f"<WorkspaceFile(path={self.file_path})>"


class FileOperationModel(Base):
    """Audit record of a file being created or updated by a run."""

    __tablename__ = "file_operations"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    workspace_id = Column(
        String(36),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(100), nullable=True)
    session_id = Column(String(36), nullable=True, index=True)
    file_path = Column(String(500), nullable=False)
    operation = Column(String(20), nullable=False)  # create, update
    previous_content = Column(Text, nullable=True)
    new_content = Column(Text, nullable=False)
    ai_model = Column(String(100), nullable=True)
    reasoning = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class GenerationSessionModel(Base):
    """Status, progress and results of one generation or refinement run."""

    __tablename__ = "generation_sessions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    workspace_id = Column(
        String(36),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(100), nullable=True, index=True)
    kind = Column(String(20), nullable=False, default="generate")  # generate, refine
    prompt = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="pending")

    # Progress
    plan = Column(JSON, nullable=True)
    files_planned = Column(Integer, nullable=False, default=0)
    files_generated = Column(Integer, nullable=False, default=0)
    tokens_used = Column(Integer, nullable=False, default=0)
    credits_used = Column(Integer, nullable=False, default=0)

    # Results
    error_message = Column(Text, nullable=True)
    file_results = Column(JSON, nullable=False, default=list)
    suggestions = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_generation_sessions_workspace_created", "workspace_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<GenerationSession(id={self.id}, status={self.status})>"


class CreditBalanceModel(Base):
    """
    Database model for user credit balances.

    One-to-one relationship with UserModel.
    """

    __tablename__ = "credit_balances"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(
        String(100),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    balance = Column(Integer, nullable=False, default=0)
    lifetime_used = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    user = relationship("UserModel", back_populates="credit_balance")

    def __repr__(self) -> str:
        return f"<CreditBalance(user_id={self.user_id}, balance={self.balance})>"


class CreditTransactionModel(Base):
    """Every change to a credit balance (grants and usage)."""

    __tablename__ = "credit_transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(
        String(100),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    amount = Column(Integer, nullable=False)  # Positive = grant, negative = usage
    type = Column(String(50), nullable=False)  # initial_grant, usage
    description = Column(Text, nullable=True)
    tokens_used = Column(Integer, nullable=True)
    complexity = Column(String(10), nullable=True)

    session_id = Column(
        String(36),
        ForeignKey("generation_sessions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    balance_after = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
