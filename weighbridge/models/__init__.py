"""Domain models for the weighbridge ingest pipeline.

This package contains the dataclasses shared by the parser, the import
engine and the aggregation engine.
"""

from .config_models import DatabaseConfig, DateGuessConfig, HeaderVocabulary, IngestConfig
from .mix_reference import MixReferenceEntry
from .summary import DailySummary
from .tenant import Tenant, TenantScope
from .transaction import DateRange, NormalizedTransactionRow, PersistedTransaction

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "DateGuessConfig",
    "HeaderVocabulary",
    "IngestConfig",
    # Processing models
    "DateRange",
    "NormalizedTransactionRow",
    "PersistedTransaction",
    "MixReferenceEntry",
    "Tenant",
    "TenantScope",
    "DailySummary",
]
