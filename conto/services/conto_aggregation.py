"""
Conto aggregation.

Viste aggregate (summary, breakdown) e liste paginate sui conti, sempre
filtrate per scope del ruolo. Le tre righe di una ripartizione vengono
raggruppate per import_key e le quote ricalcolate con le percentuali
correnti di responsabili e sportelli.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging
import re

from conto.database import Collections
from conto.models import AccountType, ContoFilters, Party, TransactionType
from conto.repositories import (
    ContoTransactionRepository,
    ContoNonRiconciliataRepository,
    ContoImportRepository,
    UserRepository,
    SportelloRepository
)
from conto.services.commission_split import CommissionSplit, compute_split, normalize_percent, round2
from conto.services.conto_cache import BREAKDOWN, SUMMARY, ContoCache
from conto.services.party_directory import PartyDirectory, company_name, sportello_name
from conto.services.scope_resolver import ContoScope, ScopeResolver
from conto.utils.normalize_fields import display_name, normalize_name

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50

PARTY_SHARES = {
    Party.FIACOM.value: "house",
    Party.RESPONSABILE.value: "manager",
    Party.SPORTELLO.value: "center",
}


def build_query(account: str, scope: ContoScope, filters: ContoFilters, ledger: bool = True) -> Dict[str, Any]:
    """
    Mongo filter for a scoped read.

    Args:
        ledger: False for unreconciled entries, which carry no type/status
    """
    clauses: List[Dict[str, Any]] = [{"account": account}]

    scope_filter = scope.to_filter()
    if scope_filter:
        clauses.append(scope_filter)

    if filters.date_from or filters.date_to:
        date_range: Dict[str, Any] = {}
        if filters.date_from:
            date_range["$gte"] = filters.date_from
        if filters.date_to:
            date_range["$lte"] = filters.date_to
        clauses.append({"date": date_range})

    if ledger and filters.type:
        clauses.append({"type": filters.type})
    if ledger and filters.status:
        clauses.append({"status": filters.status})
    if filters.company_id:
        clauses.append({"company_id": filters.company_id})
    if filters.q:
        clauses.append({"description": {"$regex": re.escape(filters.q), "$options": "i"}})

    return clauses[0] if len(clauses) == 1 else {"$and": clauses}


@dataclass
class Event:
    """One economic event: the rows sharing an import_key."""
    key: str
    rows: List[Dict[str, Any]]
    raw_amount: Optional[float] = None
    responsabile_id: Optional[str] = None
    sportello_id: Optional[str] = None
    sportello_owner_id: Optional[str] = None
    split: Optional[CommissionSplit] = None

    @property
    def type(self) -> str:
        return self.rows[0].get("type", TransactionType.ENTRATA.value)


def group_events(rows: List[Dict[str, Any]]) -> List[Event]:
    """Collapse split rows back to one entry per import_key."""
    events: Dict[str, Event] = {}
    for row in rows:
        key = row.get("import_key") or f"row|{row.get('id')}"
        event = events.get(key)
        if event is None:
            event = events[key] = Event(key=key, rows=[])
        event.rows.append(row)

        raw = row.get("raw_amount")
        if event.raw_amount is None and raw is not None and raw > 0:
            event.raw_amount = raw
        if not event.responsabile_id and row.get("responsabile_id"):
            event.responsabile_id = row["responsabile_id"]
        if not event.sportello_id and row.get("sportello_id"):
            event.sportello_id = row["sportello_id"]
        if row.get("party") == Party.SPORTELLO.value:
            event.sportello_owner_id = row.get("user_id")
    return list(events.values())


class ContoAggregationService:
    """
    Summary, breakdown and listings over the conto ledgers.
    """

    def __init__(self, db, cache: Optional[ContoCache] = None):
        self.db = db
        self.cache = cache
        self.transactions = ContoTransactionRepository(db[Collections.CONTO_TRANSACTIONS])
        self.non_riconciliate = ContoNonRiconciliataRepository(db[Collections.CONTO_NON_RICONCILIATE])
        self.imports = ContoImportRepository(db[Collections.CONTO_IMPORTS])
        self.users = UserRepository(db[Collections.USERS])
        self.sportelli = SportelloRepository(db[Collections.SPORTELLI_LAVORO])

    # ------------------------------------------------------------------ helpers

    async def _scope(self, user: Dict[str, Any], account: str, filters: ContoFilters):
        directory = await PartyDirectory.load(self.db)
        # Job centers are also matched on the user's own names
        profile = await self.users.find_by_id(user.get("user_id"))
        resolver = ScopeResolver(directory, {profile["id"]: profile} if profile else None)
        return directory, resolver.resolve(user, account, filters.user_id)

    def _cache_key(self, user: Dict[str, Any], account: str, filters: ContoFilters) -> str:
        return ContoCache.make_key(
            user.get("user_id"),
            user.get("role"),
            {"account": account, **filters.cache_params()},
        )

    def _cached(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        if self.cache is None:
            return None
        hit = self.cache.get(namespace, key)
        if hit is not None:
            logger.debug(f"Conto {namespace} cache hit: {key}")
        return hit

    def _store(self, namespace: str, key: str, value: Dict[str, Any]) -> None:
        if self.cache is not None:
            self.cache.set(namespace, key, value)

    async def _people(self, events: List[Event]) -> Dict[str, Dict[str, Any]]:
        """Managers and job centers referenced by events, inactive included."""
        user_ids = [e.responsabile_id for e in events if e.responsabile_id]
        users = {u["id"]: u for u in await self.users.find_many(user_ids)}
        sportello_ids = list({e.sportello_id for e in events if e.sportello_id})
        sportelli = {}
        if sportello_ids:
            docs = await self.sportelli.find_all({"id": {"$in": sportello_ids}})
            sportelli = {s["id"]: s for s in docs}
        return {"users": users, "sportelli": sportelli}

    def _rederive(self, events: List[Event], directory: PartyDirectory, people: Dict[str, Dict[str, Any]]) -> None:
        """Recompute every event's split with today's percentages."""
        for event in events:
            if event.raw_amount is None:
                continue

            if not event.responsabile_id or not event.sportello_id:
                company = directory.company(event.rows[0].get("company_id"))
                if company:
                    if not event.responsabile_id:
                        manager = directory.resolve_manager(company)
                        event.responsabile_id = (manager or {}).get("id")
                    if not event.sportello_id:
                        sportello, _ = directory.resolve_job_center(company)
                        event.sportello_id = (sportello or {}).get("id")

            manager = people["users"].get(event.responsabile_id) or directory.manager(event.responsabile_id)
            sportello = people["sportelli"].get(event.sportello_id) or directory.sportello(event.sportello_id)
            if sportello and not event.sportello_owner_id:
                event.sportello_owner_id = sportello.get("user_id") or sportello.get("id")

            event.split = compute_split(
                event.raw_amount,
                normalize_percent((manager or {}).get("profit_share_percentage")),
                normalize_percent((sportello or {}).get("agreed_commission")),
            )

    @staticmethod
    def _viewer_share(event: Event, scope: ContoScope) -> float:
        if event.split is None:
            return 0.0
        if scope.owner_id:
            owned = {r.get("party") for r in event.rows if r.get("user_id") == scope.owner_id}
            return sum(getattr(event.split, PARTY_SHARES[p]) for p in owned if p in PARTY_SHARES)
        role = scope.party_role
        if role == "responsabile":
            return event.split.manager if event.responsabile_id == scope.user_id else 0.0
        if role == "sportello":
            mine = (
                (scope.sportello_id and event.sportello_id == scope.sportello_id)
                or event.sportello_owner_id == scope.user_id
            )
            return event.split.center if mine else 0.0
        return event.split.house

    @staticmethod
    def _row_share(row: Dict[str, Any], scope: ContoScope) -> bool:
        """Whether a stored row is the viewer's own share of its event."""
        party = row.get("party")
        if scope.owner_id:
            return row.get("user_id") == scope.owner_id
        if party is None:
            return True
        role = scope.party_role
        if role is None:
            return party == Party.FIACOM.value
        return party == role and (
            row.get("user_id") == scope.user_id
            or (role == "sportello" and scope.sportello_id and row.get("sportello_id") == scope.sportello_id)
        )

    # ------------------------------------------------------------------ summary

    async def summary(self, user: Dict[str, Any], account: str, filters: ContoFilters) -> Dict[str, Any]:
        """
        Totali del conto visibili all'utente.

        Per proselitismo le entrate sono ricalcolate evento per evento con le
        percentuali correnti; la quota in "incoming" è quella del ruolo
        dell'utente: FIACOM per l'admin, le righe intestate all'utente per gli
        altri ruoli e per l'admin che filtra su un utente.
        """
        cache_key = self._cache_key(user, account, filters)
        cached = self._cached(SUMMARY, cache_key)
        if cached is not None:
            return cached

        directory, scope = await self._scope(user, account, filters)
        rows = await self.transactions.find_all(build_query(account, scope, filters))
        non_rec_rows = await self.non_riconciliate.find_all(build_query(account, scope, filters, ledger=False))

        outgoing = sum(r.get("amount", 0) for r in rows if r.get("type") == TransactionType.USCITA.value)
        non_riconciliate_total = sum(r.get("amount", 0) for r in non_rec_rows)
        result: Dict[str, Any] = {}

        if account == AccountType.PROSELITISMO.value:
            events = group_events([r for r in rows if r.get("type") != TransactionType.USCITA.value])
            self._rederive(events, directory, await self._people(events))

            split_events = [e for e in events if e.split is not None]
            # Events without a base amount keep their stored amounts
            legacy = sum(
                r.get("amount", 0)
                for e in events if e.split is None
                for r in e.rows if self._row_share(r, scope)
            )
            incoming = sum(self._viewer_share(e, scope) for e in split_events) + legacy
            result.update({
                "fiacom_reference": round2(sum(e.split.house for e in split_events)),
                "responsabile_total": round2(sum(e.split.manager for e in split_events)),
                "sportello_total": round2(sum(e.split.center for e in split_events)),
                "total_elav": round2(sum(e.raw_amount for e in split_events)),
                "events": len(split_events),
            })
            riconciliate_total = result["total_elav"]
        else:
            incoming = sum(
                r.get("amount", 0) for r in rows
                if r.get("type") != TransactionType.USCITA.value and self._row_share(r, scope)
            )
            riconciliate_total = incoming

        result.update({
            "account": account,
            "incoming": round2(incoming),
            "outgoing": round2(outgoing),
            "balance": round2(incoming - outgoing),
            "riconciliate_total": round2(riconciliate_total),
            "non_riconciliate_total": round2(non_riconciliate_total),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        })

        self._store(SUMMARY, cache_key, result)
        return result

    # ---------------------------------------------------------------- breakdown

    async def breakdown(self, user: Dict[str, Any], account: str, filters: ContoFilters) -> Dict[str, Any]:
        """Re-grouped totals per territorial manager and per job center."""
        cache_key = self._cache_key(user, account, filters)
        cached = self._cached(BREAKDOWN, cache_key)
        if cached is not None:
            return cached

        directory, scope = await self._scope(user, account, filters)
        rows = await self.transactions.find_all(build_query(account, scope, filters))
        events = group_events([r for r in rows if r.get("type") != TransactionType.USCITA.value])
        people = await self._people(events)
        self._rederive(events, directory, people)

        responsabili: Dict[str, Dict[str, Any]] = {}
        sportelli: Dict[str, Dict[str, Any]] = {}

        def bucket(store: Dict[str, Dict[str, Any]], key: str, bucket_id: str, name: str) -> Dict[str, Any]:
            if key not in store:
                store[key] = {"id": bucket_id, "name": name, "total": 0.0, "count": 0,
                              "raw_total": 0.0, "fiacom_total": 0.0}
            return store[key]

        for event in events:
            if event.split is None:
                continue

            if event.responsabile_id:
                manager = people["users"].get(event.responsabile_id) or directory.manager(event.responsabile_id)
                entry = bucket(
                    responsabili, event.responsabile_id, event.responsabile_id,
                    display_name(manager) or event.responsabile_id
                )
                entry["total"] += event.split.manager
                entry["count"] += 1
                entry["raw_total"] += event.raw_amount
                entry["fiacom_total"] += event.split.house

            if event.sportello_id:
                sportello = people["sportelli"].get(event.sportello_id) or directory.sportello(event.sportello_id)
                name = sportello_name(sportello) or event.sportello_id
                # Same real-world job center registered twice collapses on its name
                entry = bucket(sportelli, normalize_name(name) or event.sportello_id, event.sportello_id, name)
                entry["total"] += event.split.center
                entry["count"] += 1
                entry["raw_total"] += event.raw_amount
                entry["fiacom_total"] += event.split.house

        def finish(store: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
            items = []
            for entry in store.values():
                for field_name in ("total", "raw_total", "fiacom_total"):
                    entry[field_name] = round2(entry[field_name])
                items.append(entry)
            return sorted(items, key=lambda e: e["total"], reverse=True)

        result = {
            "account": account,
            "responsabili": finish(responsabili),
            "sportelli": finish(sportelli),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        self._store(BREAKDOWN, cache_key, result)
        return result

    # ----------------------------------------------------------------- listings

    async def list_transactions(
        self,
        user: Dict[str, Any],
        account: str,
        filters: ContoFilters,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE
    ) -> Dict[str, Any]:
        """Paged ledger rows, newest first, with company/manager/center names."""
        directory, scope = await self._scope(user, account, filters)
        query = build_query(account, scope, filters)
        page = max(page, 1)

        total = await self.transactions.count(query)
        rows = await self.transactions.find_scoped(query, skip=(page - 1) * limit, limit=limit)

        manager_ids = [r.get("responsabile_id") for r in rows if r.get("responsabile_id")]
        users = {u["id"]: u for u in await self.users.find_many(manager_ids)}

        for row in rows:
            company = directory.company(row.get("company_id"))
            row["company_name"] = company_name(company)

            manager = users.get(row.get("responsabile_id"))
            if manager is None and company:
                manager = directory.resolve_manager(company)
            row["responsabile_name"] = display_name(manager) if manager else None

            sportello = directory.sportello(row.get("sportello_id"))
            if sportello is None and company:
                sportello, _ = directory.resolve_job_center(company)
            row["sportello_name"] = sportello_name(sportello)

        return {"total": total, "page": page, "limit": limit, "items": rows}

    async def list_non_riconciliate(
        self,
        user: Dict[str, Any],
        account: str,
        filters: ContoFilters,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE
    ) -> Dict[str, Any]:
        directory, scope = await self._scope(user, account, filters)
        query = build_query(account, scope, filters, ledger=False)
        page = max(page, 1)

        total = await self.non_riconciliate.count(query)
        rows = await self.non_riconciliate.find_scoped(query, skip=(page - 1) * limit, limit=limit)
        for row in rows:
            row["company_name"] = company_name(directory.company(row.get("company_id")))

        return {"total": total, "page": page, "limit": limit, "items": rows}

    async def list_imports(self, account: str, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
        page = max(page, 1)
        query = {"account": account}
        total = await self.imports.count(query)
        items = await self.imports.list_for_account(account, skip=(page - 1) * limit, limit=limit)
        return {"total": total, "page": page, "limit": limit, "items": items}

    async def scoped_transactions(self, user: Dict[str, Any], account: str, filters: ContoFilters) -> List[Dict[str, Any]]:
        """Every visible ledger row, for exports."""
        directory, scope = await self._scope(user, account, filters)
        rows = await self.transactions.find_scoped(build_query(account, scope, filters))
        for row in rows:
            row["company_name"] = company_name(directory.company(row.get("company_id")))
        return rows
