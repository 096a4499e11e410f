"""
Read-only access to companies, users and sportelli lavoro.
These collections are owned by the anagrafiche CRUD layer.
"""
from typing import Optional, List, Dict, Any
import logging

from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

ROLE_RESPONSABILE = "responsabile_territoriale"
ROLE_SPORTELLO = "sportello_lavoro"


def is_active(doc: Optional[Dict[str, Any]]) -> bool:
    """Records without an explicit is_active flag count as active."""
    return bool(doc) and doc.get("is_active", True) is not False


class CompanyRepository(BaseRepository):
    """Repository for companies."""

    async def list_all(self) -> List[Dict[str, Any]]:
        return await self.find_all({})

    async def set_labor_consultant(
        self,
        company_id: str,
        sportello_id: str,
        consultant_name: Optional[str] = None
    ) -> bool:
        """
        Link a company to its sportello lavoro.

        The display name is written only when given, callers pass it only if
        the company has none.
        """
        fields: Dict[str, Any] = {"contact_info.labor_consultant_id": sportello_id}
        if consultant_name:
            fields["contact_info.labor_consultant"] = consultant_name
        return await self.update_one({"id": company_id}, fields)


class UserRepository(BaseRepository):
    """Repository for users (read-only)."""

    async def find_active_by_role(self, role: str) -> List[Dict[str, Any]]:
        users = await self.find_all({"role": role})
        return [u for u in users if is_active(u)]

    async def find_many(self, user_ids: List[str]) -> List[Dict[str, Any]]:
        ids = [uid for uid in set(user_ids) if uid]
        if not ids:
            return []
        return await self.find_all({"id": {"$in": ids}})


class SportelloRepository(BaseRepository):
    """Repository for sportelli lavoro (job centers)."""

    async def find_active(self) -> List[Dict[str, Any]]:
        sportelli = await self.find_all({})
        return [s for s in sportelli if is_active(s)]
