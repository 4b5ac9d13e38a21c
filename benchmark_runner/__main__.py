"""Command-line entry point: ``benchmark-runner [command] [scenario-id] [options]``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from .config import BenchmarkPaths
from .errors import BenchmarkError
from .harness import BenchmarkHarness, RunOptions, RunSummary

COMMANDS = ["run", "benchmark", "scenario", "setup", "clean", "analyze", "list", "status", "help"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="benchmark-runner",
        description="Benchmark coding-agent sessions across configuration profiles",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=COMMANDS,
        help="Command to execute (default: run)",
    )
    parser.add_argument(
        "scenario_id",
        nargs="?",
        default=None,
        help="Scenario id for the 'scenario' command",
    )
    parser.add_argument("--skip-setup", action="store_true", help="Reuse existing samples")
    parser.add_argument("--skip-analysis", action="store_true", help="Do not analyze after running")
    parser.add_argument("--cleanup", action="store_true", help="Remove samples after the run")
    parser.add_argument("--scenario", default=None, help="Run only this scenario id")
    parser.add_argument("--prompt", type=Path, default=None, help="Custom prompt file")
    parser.add_argument(
        "--root",
        type=Path,
        default=Path.cwd(),
        help="Benchmark workspace root (default: current directory)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Scenario registry file (default: <root>/config/scenarios.yaml)",
    )
    parser.add_argument("--max-parallel", type=int, default=None, help="Max concurrent sessions")
    parser.add_argument("--timeout-minutes", type=float, default=None, help="Per-session timeout")
    parser.add_argument("--parallel", action="store_true", help="Run sessions concurrently")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if args.parallel:
        overrides["parallel_execution"] = True
    if args.max_parallel is not None:
        overrides["max_parallel_sessions"] = args.max_parallel
    if args.timeout_minutes is not None:
        overrides["timeout_minutes"] = args.timeout_minutes
    return overrides


def _print_run(summary: RunSummary) -> None:
    print(f"\nRun: {summary.run_id}")
    for result in summary.results:
        status = "completed" if result.completed else f"exit {result.exit_code}"
        print(f"  {result.scenario_id}: {status} ({result.duration_seconds:.0f}s)")
    if summary.results_file:
        print(f"Results written: {summary.results_file}")
    if summary.report_paths:
        print(f"Report written: {summary.report_paths[0]}")


def _print_list(harness: BenchmarkHarness) -> None:
    print("Available scenarios:\n")
    for scenario in harness.list_scenarios():
        print(f"  {scenario.id}")
        print(f"    Name: {scenario.name}")
        if scenario.description:
            print(f"    Description: {scenario.description}")
        source = scenario.config_folder or scenario.config_document or "(none)"
        print(f"    Config: {source}\n")


def _print_status(harness: BenchmarkHarness) -> None:
    status = harness.status()
    settings = harness.settings
    print("Benchmark status:\n")
    print(f"  Scenarios configured: {status['scenarios']}")
    print(f"  Samples present: {len(status['samples'])}")
    for missing in status["missing_samples"]:
        print(f"    missing: {missing}")
    print(f"  Recorded runs: {len(status['runs'])}")
    if status["latest_run"]:
        print(f"  Latest run: {status['latest_run']}")
    print("\nSettings:")
    print(f"  parallel_execution: {settings.parallel_execution}")
    print(f"  max_parallel_sessions: {settings.max_parallel_sessions}")
    print(f"  timeout_minutes: {settings.timeout_minutes}")
    print(f"  cleanup_after_run: {settings.cleanup_after_run}")


def run(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    if args.command == "help":
        parser.print_help()
        return 0

    paths = BenchmarkPaths.from_root(args.root, args.config)
    harness = BenchmarkHarness.from_paths(paths, cli_overrides=_cli_overrides(args))
    options = RunOptions(
        skip_setup=args.skip_setup,
        skip_analysis=args.skip_analysis,
        cleanup=args.cleanup,
        scenario_id=args.scenario,
        prompt_file=args.prompt,
    )

    if args.command in ("run", "benchmark"):
        _print_run(asyncio.run(harness.run(options)))
    elif args.command == "scenario":
        scenario_id = args.scenario_id or args.scenario
        if not scenario_id:
            print("Error: the 'scenario' command needs a scenario id", file=sys.stderr)
            return 1
        _print_run(asyncio.run(harness.run_single(scenario_id, options)))
    elif args.command == "setup":
        samples = harness.setup(args.scenario)
        print(f"Created {len(samples)} sample directories in {paths.samples_dir}")
    elif args.command == "clean":
        if harness.clean():
            print(f"Removed {paths.samples_dir}")
        else:
            print("Nothing to clean")
    elif args.command == "analyze":
        output = harness.analyze()
        print(f"Report written: {output.markdown_path}")
        print(f"Report written: {output.json_path}")
    elif args.command == "list":
        _print_list(harness)
    elif args.command == "status":
        _print_status(harness)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return run(args, parser)
    except (BenchmarkError, OSError) as e:
        logging.getLogger(__name__).debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
