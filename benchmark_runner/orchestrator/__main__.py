"""Route a batch of changed files through the orchestrator and wait for the results.

Usage:
    python -m benchmark_runner.orchestrator --config config/agents.yaml src/App.js
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from ..errors import BenchmarkError
from .orchestrator import OrchestratorConfig, TaskOrchestrator


async def _route(config: OrchestratorConfig, paths: list[str], timeout: float) -> int:
    async with TaskOrchestrator(config) as orchestrator:
        for path in paths:
            orchestrator.route_file_change(path)
        idle = await orchestrator.wait_idle(timeout)
        state = orchestrator.state

    print(f"Completed: {state.completed_count}")
    print(f"Failed: {len(state.failed)}")
    for task in state.failed:
        print(f"  {task.task_id} ({task.agent}): {task.error}")
    if not idle:
        print(f"Still outstanding after {timeout:g}s: {len(state.tasks)}")
    return 0 if idle and not state.failed else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Route file changes to worker agents")
    parser.add_argument("paths", nargs="+", help="Changed file paths")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config/agents.yaml"),
        help="Agent definitions (default: config/agents.yaml)",
    )
    parser.add_argument("--timeout", type=float, default=60.0, help="Seconds to wait for idle")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    try:
        config = OrchestratorConfig.from_yaml(args.config)
        return asyncio.run(_route(config, args.paths, args.timeout))
    except (BenchmarkError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
