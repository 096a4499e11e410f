"""
Models package.
Pydantic schemas for the conto engine.
"""
from .conto import (
    AccountType,
    TransactionType,
    TransactionStatus,
    TransactionSource,
    Party,
    ContoTransaction,
    ContoNonRiconciliata,
    ContoImport,
    CompetenzaCreate,
    ContoFilters
)

__all__ = [
    "AccountType",
    "TransactionType",
    "TransactionStatus",
    "TransactionSource",
    "Party",
    "ContoTransaction",
    "ContoNonRiconciliata",
    "ContoImport",
    "CompetenzaCreate",
    "ContoFilters"
]
