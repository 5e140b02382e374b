"""Database module for Buildable."""

from .database import get_db, engine, async_session, init_db, close_db
from .models import (
    Base,
    UserModel,
    WorkspaceModel,
    WorkspaceFileModel,
    FileOperationModel,
    GenerationSessionModel,
    CreditBalanceModel,
    CreditTransactionModel,
)
from .repository import (
    UserRepository,
    WorkspaceRepository,
    SessionRepository,
    CreditRepository,
    SqlSessionLedger,
    SqlFileStore,
    SqlCreditLedger,
    SqlWorkspaceLock,
)

__all__ = [
    "get_db",
    "engine",
    "async_session",
    "init_db",
    "close_db",
    "Base",
    "UserModel",
    "WorkspaceModel",
    "WorkspaceFileModel",
    "FileOperationModel",
    "GenerationSessionModel",
    "CreditBalanceModel",
    "CreditTransactionModel",
    "UserRepository",
    "WorkspaceRepository",
    "SessionRepository",
    "CreditRepository",
    "SqlSessionLedger",
    "SqlFileStore",
    "SqlCreditLedger",
    "SqlWorkspaceLock",
]
