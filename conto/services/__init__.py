"""
Services package.
Business logic of the conto engine.
"""
from .conto_cache import ContoCache
from .conto_ingestion import ContoIngestionService
from .conto_aggregation import ContoAggregationService
from .conto_export import ContoExporter
from .scope_resolver import ContoScope, ScopeResolver
from .party_directory import PartyDirectory

__all__ = [
    "ContoCache",
    "ContoIngestionService",
    "ContoAggregationService",
    "ContoExporter",
    "ContoScope",
    "ScopeResolver",
    "PartyDirectory"
]
