"""
Conto repositories: ledger entries, unreconciled entries and import records.
"""
from typing import Optional, List, Dict, Any, Iterable, Set
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError
import logging

from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

LEDGER_SORT = [("date", DESCENDING), ("created_at", DESCENDING)]


class _KeyedEntryRepository(BaseRepository):
    """Shared lookups for collections whose rows carry an import_key."""

    async def find_existing_import_keys(self, keys: Iterable[str], account: str) -> Set[str]:
        """
        Return the subset of keys already persisted for the account.

        Args:
            keys: Candidate import keys
            account: proselitismo | servizi
        """
        keys = [k for k in keys if k]
        if not keys:
            return set()
        docs = await self.find_all({"account": account, "import_key": {"$in": keys}})
        return {doc["import_key"] for doc in docs if doc.get("import_key")}

    async def find_scoped(
        self,
        filter_query: Dict[str, Any],
        skip: int = 0,
        limit: int = 0
    ) -> List[Dict[str, Any]]:
        return await self.find_all(filter_query, skip=skip, limit=limit, sort=LEDGER_SORT)


class ContoTransactionRepository(_KeyedEntryRepository):
    """Repository for ledger entries (conto_transactions)."""


class ContoNonRiconciliataRepository(_KeyedEntryRepository):
    """Repository for unreconciled entries (conto_non_riconciliate)."""


class ContoImportRepository(BaseRepository):
    """Repository for import records (conto_imports)."""

    async def find_by_hash(self, file_hash: str) -> Optional[Dict[str, Any]]:
        return await self.find_one({"file_hash": file_hash})

    async def create_if_absent(self, record: Dict[str, Any]) -> bool:
        """
        Insert the import record; the unique index on file_hash is the gate.

        Returns:
            True if inserted, False if another import with the same hash exists
        """
        try:
            await self.create(record)
            return True
        except DuplicateKeyError:
            logger.warning(
                f"Import record already present for hash {record.get('file_hash')}",
                extra={"file_hash": record.get("file_hash")}
            )
            return False

    async def list_for_account(self, account: str, skip: int = 0, limit: int = 0) -> List[Dict[str, Any]]:
        return await self.find_all(
            {"account": account},
            skip=skip,
            limit=limit,
            sort=[("created_at", DESCENDING)]
        )
