"""
Test dello script di creazione indici.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import OperationFailure

from conto.scripts.create_indexes import create_indexes, safe_create_index


class IndexRecorder:
    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        if name not in self.collections:
            coll = MagicMock()
            coll.create_index = AsyncMock(return_value="idx")
            self.collections[name] = coll
        return self.collections[name]


@pytest.mark.asyncio
async def test_file_hash_index_is_unique():
    db = IndexRecorder()

    await create_indexes(db)

    calls = db["conto_imports"].create_index.call_args_list
    assert any(c.args == ("file_hash",) and c.kwargs.get("unique") for c in calls)


@pytest.mark.asyncio
async def test_both_ledgers_are_indexed_on_import_key():
    db = IndexRecorder()

    await create_indexes(db)

    for name in ("conto_transactions", "conto_non_riconciliate"):
        keys = [c.args[0] for c in db[name].create_index.call_args_list]
        assert "import_key" in keys


@pytest.mark.asyncio
async def test_conflicting_index_is_skipped():
    coll = MagicMock()
    coll.create_index = AsyncMock(side_effect=OperationFailure("conflict", code=86))

    assert await safe_create_index(coll, "id", unique=True) is None


@pytest.mark.asyncio
async def test_other_index_failures_propagate():
    coll = MagicMock()
    coll.create_index = AsyncMock(side_effect=OperationFailure("boom", code=2))

    with pytest.raises(OperationFailure):
        await safe_create_index(coll, "id")
