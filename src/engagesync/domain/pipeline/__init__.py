"""Daily pipeline: stages, progress reporting and the runner."""

from __future__ import annotations

from .progress import ProgressReport, ProgressTracker, format_eta
from .runner import PipelineRunner, summarize_stages
from .stages import (
    INGEST_STAGE_PREFIX,
    PRE_CREATE_STAGE,
    RECALC_STAGE,
    RECONCILE_STAGE,
    IngestStage,
    PairKey,
    PipelineStage,
    PreCreateTagsStage,
    RecalcEngagementStage,
    ReconcileTagsStage,
    RunContext,
    StageOutcome,
    StopRequest,
)

__all__ = [
    "INGEST_STAGE_PREFIX",
    "PRE_CREATE_STAGE",
    "RECALC_STAGE",
    "RECONCILE_STAGE",
    "IngestStage",
    "PairKey",
    "PipelineRunner",
    "PipelineStage",
    "PreCreateTagsStage",
    "ProgressReport",
    "ProgressTracker",
    "RecalcEngagementStage",
    "ReconcileTagsStage",
    "RunContext",
    "StageOutcome",
    "StopRequest",
    "format_eta",
    "summarize_stages",
]
