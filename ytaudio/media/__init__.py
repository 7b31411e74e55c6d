"""
Media Processing Layer.

This package is responsible for running the external extraction tool,
walking the strategy ladder, and validating the produced artifacts.
"""

from .integrity import FileIntegrityChecker
from .orchestrator import ExtractionOrchestrator, ExtractionOutcome
from .process import ExtractionProcess, YtDlpAdapter
from .strategies import ExtractionStrategy, build_strategy_ladder

__all__ = [
    "ExtractionOrchestrator",
    "ExtractionOutcome",
    "ExtractionProcess",
    "ExtractionStrategy",
    "FileIntegrityChecker",
    "YtDlpAdapter",
    "build_strategy_ladder",
]
