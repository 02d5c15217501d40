"""Ingest pipeline, background runs and signal generation over stored bars."""

from backtester.pipeline.ingest import Pipeline, normalize_symbols
from backtester.pipeline.runner import RunHandle, ingest
from backtester.pipeline.signals import SignalGenerationService

__all__ = [
    # Ingest
    "Pipeline",
    "normalize_symbols",
    # Background runs
    "RunHandle",
    "ingest",
    # Stored-bar signal generation
    "SignalGenerationService",
]
