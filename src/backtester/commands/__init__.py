"""CLI command implementations for the backtester.

Each command module provides:
- Configuration loading and validation
- Command execution logic
"""

from backtester.commands.ingest import build_pipeline, load_ingest_config, run_ingest

__all__ = [
    "build_pipeline",
    "load_ingest_config",
    "run_ingest",
]
