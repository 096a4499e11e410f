"""
Test configuration and fixtures for pytest.

MockDB is an in-memory stand-in for the Motor database: enough of the query
language for the conto repositories, a unique index on conto_imports.file_hash
and unordered bulk inserts that report per-document failures.
"""
from io import BytesIO
from unittest.mock import MagicMock
import copy
import re

import pytest
from openpyxl import Workbook
from pymongo.errors import BulkWriteError, DuplicateKeyError

from conto.services.conto_cache import ContoCache


# =============================================================================
# MOCK DATABASE
# =============================================================================

UNIQUE_FIELDS = {"conto_imports": ("file_hash",)}


def _get_path(doc, path):
    value = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return None, False
        value = value[part]
    return value, True


def _set_path(doc, path, value):
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def _match_operator(value, exists, op, arg):
    if op == "$exists":
        return exists == bool(arg)
    if op == "$in":
        return exists and value in arg
    if op == "$ne":
        return value != arg
    if op == "$regex":
        if not isinstance(value, str):
            return False
        return re.search(arg, value) is not None
    if op == "$options":
        return True
    if not exists or value is None:
        return False
    if op == "$gte":
        return value >= arg
    if op == "$lte":
        return value <= arg
    if op == "$gt":
        return value > arg
    if op == "$lt":
        return value < arg
    raise NotImplementedError(op)


def matches(doc, query):
    for key, condition in (query or {}).items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
            continue
        if key == "$and":
            if not all(matches(doc, sub) for sub in condition):
                return False
            continue

        value, exists = _get_path(doc, key)
        if isinstance(condition, dict) and any(k.startswith("$") for k in condition):
            if "$regex" in condition and "i" in condition.get("$options", ""):
                pattern = re.compile(condition["$regex"], re.IGNORECASE)
                if not isinstance(value, str) or not pattern.search(value):
                    return False
                continue
            for op, arg in condition.items():
                if not _match_operator(value, exists, op, arg):
                    return False
        elif value != condition:
            return False
    return True


def project(doc, projection):
    result = copy.deepcopy(doc)
    if projection and projection.get("_id") == 0:
        result.pop("_id", None)
    return result


class MockCursor:
    def __init__(self, data):
        self.data = data

    def sort(self, key_or_list, direction=None):
        keys = key_or_list if isinstance(key_or_list, list) else [(key_or_list, direction or 1)]
        for field_name, order in reversed(keys):
            self.data.sort(
                key=lambda d: (d.get(field_name) is not None, d.get(field_name) or ""),
                reverse=order < 0
            )
        return self

    def skip(self, n):
        self.data = self.data[n:]
        return self

    def limit(self, n):
        if n:
            self.data = self.data[:n]
        return self

    async def to_list(self, length=None):
        return self.data[:length] if length else list(self.data)


class MockCollection:
    """Mock collection MongoDB"""

    def __init__(self, name, unique_fields=()):
        self.name = name
        self.data = []
        self.unique_fields = unique_fields
        # Optional predicate: documents it returns True for fail to insert
        self.reject = None

    def _violates_unique(self, doc):
        for field_name in self.unique_fields:
            if any(existing.get(field_name) == doc.get(field_name) for existing in self.data):
                return True
        return False

    def find(self, query=None, projection=None):
        return MockCursor([project(d, projection) for d in self.data if matches(d, query)])

    async def find_one(self, query=None, projection=None):
        for doc in self.data:
            if matches(doc, query):
                return project(doc, projection)
        return None

    async def insert_one(self, doc):
        if self._violates_unique(doc) or (self.reject and self.reject(doc)):
            raise DuplicateKeyError("E11000 duplicate key error")
        self.data.append(copy.deepcopy(doc))
        return MagicMock(inserted_id=doc.get("id"))

    async def insert_many(self, docs, ordered=True):
        inserted, errors = [], []
        for index, doc in enumerate(docs):
            if self._violates_unique(doc) or (self.reject and self.reject(doc)):
                errors.append({"index": index, "code": 11000, "errmsg": "E11000 duplicate key error"})
                if ordered:
                    break
                continue
            self.data.append(copy.deepcopy(doc))
            inserted.append(doc.get("id"))
        if errors:
            raise BulkWriteError({"writeErrors": errors, "nInserted": len(inserted)})
        return MagicMock(inserted_ids=inserted)

    async def update_one(self, query, update):
        for doc in self.data:
            if matches(doc, query):
                for path, value in update.get("$set", {}).items():
                    _set_path(doc, path, value)
                return MagicMock(modified_count=1, matched_count=1)
        return MagicMock(modified_count=0, matched_count=0)

    async def count_documents(self, query=None):
        return sum(1 for doc in self.data if matches(doc, query))


class MockDB:
    """Mock database per i test"""

    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        if name not in self.collections:
            self.collections[name] = MockCollection(name, UNIQUE_FIELDS.get(name, ()))
        return self.collections[name]


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


# =============================================================================
# DATI DI PROVA
# =============================================================================

ADMIN = {"user_id": "admin-1", "role": "admin"}
RESP_1 = {"user_id": "resp-1", "role": "responsabile_territoriale"}
RESP_2 = {"user_id": "resp-2", "role": "responsabile_territoriale"}
SPORTELLO_USER_1 = {"user_id": "sport-user-1", "role": "sportello_lavoro"}
PLAIN_USER = {"user_id": "plain-user", "role": "user"}

USERS = [
    {"id": "admin-1", "username": "admin", "role": "admin", "is_active": True},
    {
        "id": "resp-1", "username": "mverdi", "first_name": "Mario", "last_name": "Verdi",
        "organization": "Rossi S.r.l.", "role": "responsabile_territoriale",
        "is_active": True, "profit_share_percentage": 80,
    },
    {
        "id": "resp-2", "username": "aneri", "first_name": "Anna", "last_name": "Neri",
        "organization": "Rossi Mario", "role": "responsabile_territoriale",
        "is_active": True, "profit_share_percentage": 50,
    },
    {
        "id": "resp-old", "username": "ggialli", "organization": "Gialli",
        "role": "responsabile_territoriale", "is_active": False, "profit_share_percentage": 30,
    },
    {
        "id": "sport-user-1", "username": "pblu", "first_name": "Paola", "last_name": "Blu",
        "role": "sportello_lavoro", "is_active": True,
    },
    {"id": "sport-user-2", "username": "sportello2", "role": "sportello_lavoro", "is_active": True},
    {"id": "plain-user", "username": "utente", "role": "user", "is_active": True},
]

SPORTELLI = [
    {
        "id": "sp-1", "business_name": "Sportello Centro", "agent_name": "Paola Blu",
        "user_id": "sport-user-1", "agreed_commission": 40, "is_active": True,
    },
    {
        "id": "sp-2", "business_name": "Sportello Nord S.r.l.", "agent_name": "Marco Viola",
        "user_id": "sport-user-2", "agreed_commission": 10, "is_active": True,
    },
    {
        # Same real-world job center as sp-1, registered twice
        "id": "sp-dup", "business_name": "Sportello Centro", "agent_name": "P. Blu",
        "agreed_commission": 40, "is_active": True,
    },
]

COMPANIES = [
    {
        "id": "comp-alpha", "business_name": "Alfa Costruzioni S.r.l.", "inps_code": "1234567890",
        "user_id": "resp-1",
        "contract_details": {"territorial_manager": "Rossi S.r.l."},
        "contact_info": {"labor_consultant_id": "sp-1", "labor_consultant": "Sportello Centro"},
    },
    {
        "id": "comp-beta", "business_name": "Beta Servizi", "matricola": "9876543210",
        "user_id": "admin-1",
        "contract_details": {"territorial_manager": "Rossi Mario"},
        "contact_info": {"labor_consultant": "sportello nord srl"},
    },
    {
        "id": "comp-gamma", "business_name": "Gamma Trasporti", "inps_code": "5555500000",
        "user_id": "resp-1",
        "contact_info": {"labor_consultant_id": "sp-dup"},
    },
    {
        "id": "comp-delta-1", "business_name": "Delta Group", "inps_code": "1111100000",
        "user_id": "resp-2", "contact_info": {"labor_consultant_id": "sp-2"},
    },
    {
        "id": "comp-delta-2", "business_name": "Delta Group", "inps_code": "2222200000",
        "user_id": "resp-2", "contact_info": {"labor_consultant_id": "sp-2"},
    },
    {
        "id": "comp-epsilon", "business_name": "Epsilon", "inps_code": "7777700000",
        "user_id": "plain-user", "contact_info": {"labor_consultant_id": "sp-1"},
    },
]

HEADERS = [
    "Mese", "Anno", "Matricola INPS", "Ragione Sociale",
    "Non riconciliata", "Quota riconciliata", "Fondo sanitario", "Quota FIACOM",
]


def make_xlsx(rows, headers=HEADERS):
    """Build an .xlsx file in memory: header row plus data rows."""
    wb = Workbook()
    ws = wb.active
    ws.append(headers)
    for row in rows:
        ws.append(list(row))
    output = BytesIO()
    wb.save(output)
    return output.getvalue()


def sheet_row(mese="Gennaio", anno=2025, matricola="", ragione="", non_rec=None, quota_fiacom=None):
    return [mese, anno, matricola, ragione, non_rec, None, None, quota_fiacom]


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def db():
    return MockDB()


@pytest.fixture
def seeded_db(db):
    db["users"].data.extend(copy.deepcopy(USERS))
    db["sportelli_lavoro"].data.extend(copy.deepcopy(SPORTELLI))
    db["companies"].data.extend(copy.deepcopy(COMPANIES))
    return db


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ContoCache(ttl_seconds=60, clock=clock)
