"""
Repository package.
Provides data access layer for the conto engine.
"""
from .base_repository import BaseRepository
from .conto_repository import (
    ContoTransactionRepository,
    ContoNonRiconciliataRepository,
    ContoImportRepository
)
from .party_repository import (
    CompanyRepository,
    UserRepository,
    SportelloRepository,
    ROLE_RESPONSABILE,
    ROLE_SPORTELLO,
    is_active
)

__all__ = [
    "BaseRepository",
    "ContoTransactionRepository",
    "ContoNonRiconciliataRepository",
    "ContoImportRepository",
    "CompanyRepository",
    "UserRepository",
    "SportelloRepository",
    "ROLE_RESPONSABILE",
    "ROLE_SPORTELLO",
    "is_active"
]
