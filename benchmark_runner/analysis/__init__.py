"""Post-run analysis of benchmark results."""

from .analyzer import (
    BenchmarkAnalyzer,
    LoadedRun,
    find_run_dirs,
    is_tdd_scenario,
    load_latest_results,
    load_run,
)

__all__ = [
    "BenchmarkAnalyzer",
    "LoadedRun",
    "find_run_dirs",
    "is_tdd_scenario",
    "load_latest_results",
    "load_run",
]
