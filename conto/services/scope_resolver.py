"""
Scope resolver.

Decide quali righe dei conti può vedere un utente in base al ruolo.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from conto.models import AccountType
from conto.repositories import ROLE_RESPONSABILE, ROLE_SPORTELLO
from conto.services.party_directory import PartyDirectory

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("admin", "super_admin")

SCOPE_GLOBAL = "global"
SCOPE_RESPONSABILE = "responsabile"
SCOPE_SPORTELLO = "sportello"
SCOPE_OWN = "own"


def is_admin(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user) and user.get("role") in ADMIN_ROLES


@dataclass
class ContoScope:
    """Visibility predicate over ledger rows."""
    kind: str
    user_id: Optional[str] = None
    company_ids: List[str] = field(default_factory=list)
    sportello_id: Optional[str] = None

    @property
    def party_role(self) -> Optional[str]:
        """Which share of an event belongs to the viewer (None = house share)."""
        if self.kind == SCOPE_RESPONSABILE:
            return "responsabile"
        if self.kind == SCOPE_SPORTELLO:
            return "sportello"
        return None

    @property
    def owner_id(self) -> Optional[str]:
        """User whose own rows are counted, when the view is narrowed to one person."""
        if self.kind == SCOPE_OWN or (self.kind == SCOPE_GLOBAL and self.user_id):
            return self.user_id
        return None

    def to_filter(self) -> Dict[str, Any]:
        if self.kind == SCOPE_GLOBAL:
            return {"user_id": self.user_id} if self.user_id else {}

        if self.kind == SCOPE_RESPONSABILE:
            clauses: List[Dict[str, Any]] = [{"responsabile_id": self.user_id}]
            if self.company_ids:
                clauses.append({"company_id": {"$in": self.company_ids}})
            return {"$or": clauses}

        if self.kind == SCOPE_SPORTELLO:
            clauses = [{"user_id": self.user_id}]
            if self.company_ids:
                clauses.append({"company_id": {"$in": self.company_ids}})
            if self.sportello_id:
                clauses.append({"sportello_id": self.sportello_id})
            return {"$or": clauses}

        return {"user_id": self.user_id}


class ScopeResolver:
    """Maps (user, role, account) to a ContoScope."""

    def __init__(self, directory: PartyDirectory, users_by_id: Optional[Dict[str, Dict[str, Any]]] = None):
        self.directory = directory
        self.users_by_id = users_by_id or {}

    def resolve(
        self,
        user: Dict[str, Any],
        account: str,
        requested_user_id: Optional[str] = None
    ) -> ContoScope:
        """
        Args:
            user: Current user ({"user_id", "role", ...})
            account: proselitismo | servizi
            requested_user_id: Narrowing requested by an admin, ignored for other roles
        """
        user_id = user.get("user_id")
        role = user.get("role")

        if role in ADMIN_ROLES:
            return ContoScope(kind=SCOPE_GLOBAL, user_id=requested_user_id or None)

        if role == ROLE_RESPONSABILE and account == AccountType.PROSELITISMO.value:
            company_ids = self.directory.companies_for_manager(user_id)
            logger.debug(f"Responsabile {user_id} scope: {len(company_ids)} companies")
            return ContoScope(kind=SCOPE_RESPONSABILE, user_id=user_id, company_ids=company_ids)

        if role == ROLE_SPORTELLO:
            sportello = self.directory.sportello_for_user(user_id)
            profile = self.users_by_id.get(user_id) or user
            company_ids = self.directory.companies_for_sportello(sportello, profile)
            logger.debug(f"Sportello {user_id} scope: {len(company_ids)} companies")
            return ContoScope(
                kind=SCOPE_SPORTELLO,
                user_id=user_id,
                company_ids=company_ids,
                sportello_id=(sportello or {}).get("id"),
            )

        return ContoScope(kind=SCOPE_OWN, user_id=user_id)
