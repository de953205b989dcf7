"""Ingestion: reconciliation, fetch/validate/insert pipeline."""

from blacklist.ingestion.config import PipelineConfig
from blacklist.ingestion.pipeline import IngestionPipeline, PipelineResult, TypeCounts
from blacklist.ingestion.reconciler import (
    DuplicateSourceError,
    ReconciliationPlan,
    Reconciler,
    SourceUpdateError,
    UpdateSummary,
    plan_reconciliation,
)
from blacklist.ingestion.validation import ValidationStats, validate_stream

__all__ = [
    "DuplicateSourceError",
    "IngestionPipeline",
    "PipelineConfig",
    "PipelineResult",
    "ReconciliationPlan",
    "Reconciler",
    "SourceUpdateError",
    "TypeCounts",
    "UpdateSummary",
    "ValidationStats",
    "plan_reconciliation",
    "validate_stream",
]
