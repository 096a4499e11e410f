"""
Party directory.

Snapshot in memoria di aziende, responsabili territoriali e sportelli lavoro
usato per risolvere, riga per riga, a chi spettano le quote di un evento.
Le anagrafiche appartengono al CRUD esterno: qui sono solo lette, con
l'unica eccezione del collegamento azienda -> sportello (backfill).
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
import logging

from conto.database import Collections
from conto.repositories import (
    CompanyRepository,
    UserRepository,
    SportelloRepository,
    ROLE_RESPONSABILE
)
from conto.services.commission_split import normalize_percent
from conto.utils.normalize_fields import (
    matches_any,
    names_match,
    normalize_registration,
    person_names
)

logger = logging.getLogger(__name__)

ERR_COMPANY_MISSING = "Azienda non trovata"
ERR_COMPANY_AMBIGUOUS = "Azienda ambigua, usare la matricola INPS"

# Shorter codes are too generic for a substring match
MIN_REGISTRATION_SUBSTRING = 5


def _same_text(left: Any, right: Any) -> bool:
    a = " ".join(str(left or "").split()).casefold()
    b = " ".join(str(right or "").split()).casefold()
    return bool(a) and a == b


def company_name(company: Optional[Dict[str, Any]]) -> Optional[str]:
    if not company:
        return None
    return company.get("company_name") or company.get("business_name")


def sportello_name(sportello: Optional[Dict[str, Any]]) -> Optional[str]:
    if not sportello:
        return None
    return sportello.get("business_name") or sportello.get("agent_name")


def _territorial_manager_name(company: Dict[str, Any]) -> Optional[str]:
    contract = company.get("contract_details") or {}
    return contract.get("territorial_manager") or company.get("territorial_manager")


@dataclass
class CompanyResolution:
    company: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    by_name: bool = False


class PartyDirectory:
    """Lookups over companies, active managers and active job centers."""

    def __init__(
        self,
        companies: List[Dict[str, Any]],
        managers: List[Dict[str, Any]],
        sportelli: List[Dict[str, Any]],
        company_repo: Optional[CompanyRepository] = None
    ):
        self.companies = companies
        self.managers = managers
        self.sportelli = sportelli
        self.company_repo = company_repo
        self._companies_by_id = {c["id"]: c for c in companies if c.get("id")}
        self._managers_by_id = {m["id"]: m for m in managers if m.get("id")}
        self._sportelli_by_id = {s["id"]: s for s in sportelli if s.get("id")}

    @classmethod
    async def load(cls, db) -> "PartyDirectory":
        company_repo = CompanyRepository(db[Collections.COMPANIES])
        user_repo = UserRepository(db[Collections.USERS])
        sportello_repo = SportelloRepository(db[Collections.SPORTELLI_LAVORO])
        return cls(
            companies=await company_repo.list_all(),
            managers=await user_repo.find_active_by_role(ROLE_RESPONSABILE),
            sportelli=await sportello_repo.find_active(),
            company_repo=company_repo,
        )

    # ------------------------------------------------------------------ lookups

    def company(self, company_id: Optional[str]) -> Optional[Dict[str, Any]]:
        return self._companies_by_id.get(company_id) if company_id else None

    def manager(self, user_id: Optional[str]) -> Optional[Dict[str, Any]]:
        return self._managers_by_id.get(user_id) if user_id else None

    def sportello(self, sportello_id: Optional[str]) -> Optional[Dict[str, Any]]:
        return self._sportelli_by_id.get(sportello_id) if sportello_id else None

    def sportello_for_user(self, user_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not user_id:
            return None
        for sportello in self.sportelli:
            if sportello.get("user_id") == user_id:
                return sportello
        return None

    def manager_percent(self, user_id: Optional[str]) -> float:
        """Current profit share of an active manager (0 when unknown)."""
        manager = self.manager(user_id)
        return normalize_percent(manager.get("profit_share_percentage")) if manager else 0.0

    def center_percent(self, sportello_id: Optional[str]) -> float:
        """Current agreed commission of an active job center (0 when unknown)."""
        sportello = self.sportello(sportello_id)
        return normalize_percent(sportello.get("agreed_commission")) if sportello else 0.0

    # --------------------------------------------------------------- resolution

    def _match_registration(self, matricola: str) -> List[Dict[str, Any]]:
        code = normalize_registration(matricola)
        if not code:
            return []

        def codes(company: Dict[str, Any]) -> List[str]:
            values = (company.get("inps_code"), company.get("matricola"))
            return [normalize_registration(v) for v in values if v]

        exact = [c for c in self.companies if code in codes(c)]
        if exact or len(code) < MIN_REGISTRATION_SUBSTRING:
            return exact

        return [
            c for c in self.companies
            if any(
                len(known) >= MIN_REGISTRATION_SUBSTRING and (code in known or known in code)
                for known in codes(c)
            )
        ]

    def _match_name(self, ragione_sociale: str, pool: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not ragione_sociale:
            return []
        return [
            c for c in pool
            if _same_text(c.get("business_name"), ragione_sociale)
            or _same_text(c.get("company_name"), ragione_sociale)
        ]

    def resolve_company(self, matricola: str, ragione_sociale: str) -> CompanyResolution:
        """
        Find the company of a spreadsheet row.

        Registration number first (exact, then substring), then exact
        case-insensitive name. Several name matches without a usable
        registration number are an ambiguity, never a guess.
        """
        by_code = self._match_registration(matricola)
        if len(by_code) == 1:
            return CompanyResolution(company=by_code[0])
        if len(by_code) > 1:
            narrowed = self._match_name(ragione_sociale, by_code)
            if len(narrowed) == 1:
                return CompanyResolution(company=narrowed[0])
            logger.warning(f"Matricola {matricola} matches {len(by_code)} companies")
            return CompanyResolution(error=ERR_COMPANY_AMBIGUOUS)

        by_name = self._match_name(ragione_sociale, self.companies)
        if len(by_name) == 1:
            company = by_name[0]
            logger.info(
                f"Company resolved by name: '{ragione_sociale}' -> {company.get('id')}"
                + (f" (matricola '{matricola}' not found)" if matricola else "")
            )
            return CompanyResolution(company=company, by_name=True)
        if len(by_name) > 1:
            return CompanyResolution(error=ERR_COMPANY_AMBIGUOUS)
        return CompanyResolution(error=ERR_COMPANY_MISSING)

    def resolve_manager(self, company: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Territorial manager of a company.

        The recorded manager name is matched against active managers'
        organization, full name and username; otherwise the company owner,
        if an active territorial manager.
        """
        recorded = _territorial_manager_name(company)
        if recorded:
            matches = [m for m in self.managers if matches_any(recorded, person_names(m))]
            if len(matches) == 1:
                logger.info(
                    f"Manager resolved by name: company {company.get('id')} "
                    f"'{recorded}' -> {matches[0].get('id')}"
                )
                return matches[0]
            if len(matches) > 1:
                logger.warning(f"Manager name '{recorded}' matches {len(matches)} active managers")

        # managers only holds active territorial managers
        return self.manager(company.get("user_id"))

    def resolve_job_center(self, company: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], bool]:
        """
        Job center of a company.

        Returns:
            (sportello or None, True if the company link must be backfilled)
        """
        contact = company.get("contact_info") or {}
        linked = self.sportello(contact.get("labor_consultant_id"))
        if linked:
            return linked, False

        consultant = contact.get("labor_consultant")
        if not consultant:
            return None, False

        matches = [
            s for s in self.sportelli
            if names_match(consultant, s.get("business_name")) or names_match(consultant, s.get("agent_name"))
        ]
        if len(matches) != 1:
            if matches:
                logger.warning(f"Job center name '{consultant}' matches {len(matches)} job centers")
            return None, False

        logger.info(
            f"Job center resolved by name: company {company.get('id')} "
            f"'{consultant}' -> {matches[0].get('id')}"
        )
        return matches[0], True

    async def backfill_job_center(self, company: Dict[str, Any], sportello: Dict[str, Any]) -> None:
        """Store the missing/stale job center link on the company."""
        contact = company.setdefault("contact_info", {})
        consultant_name = None if contact.get("labor_consultant") else sportello_name(sportello)
        contact["labor_consultant_id"] = sportello["id"]
        if consultant_name:
            contact["labor_consultant"] = consultant_name
        if self.company_repo is not None:
            await self.company_repo.set_labor_consultant(company["id"], sportello["id"], consultant_name)
        logger.info(f"Backfilled job center {sportello['id']} on company {company.get('id')}")

    # -------------------------------------------------------------------- scope

    def companies_for_manager(self, user_id: str) -> List[str]:
        """Ids of companies whose resolved manager is user_id."""
        ids = []
        for company in self.companies:
            manager = self.resolve_manager(company)
            if manager and manager.get("id") == user_id:
                ids.append(company["id"])
        return ids

    def companies_for_sportello(
        self,
        sportello: Optional[Dict[str, Any]],
        user: Optional[Dict[str, Any]]
    ) -> List[str]:
        """Ids of companies linked to a job center by reference or by name."""
        names = [sportello_name(sportello), (sportello or {}).get("agent_name")] + person_names(user)
        names = [n for n in names if n]
        sportello_id = (sportello or {}).get("id")

        ids = []
        for company in self.companies:
            contact = company.get("contact_info") or {}
            if sportello_id and contact.get("labor_consultant_id") == sportello_id:
                ids.append(company["id"])
            elif contact.get("labor_consultant") and matches_any(contact["labor_consultant"], names):
                ids.append(company["id"])
        return ids
