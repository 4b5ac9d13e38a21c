"""Thin git helpers for sample baselines and change capture."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path

# Identity used for the baseline commit in every sample.
BENCHMARK_GIT_IDENTITY = {
    "GIT_AUTHOR_NAME": "Benchmark",
    "GIT_AUTHOR_EMAIL": "benchmark@test.com",
    "GIT_COMMITTER_NAME": "Benchmark",
    "GIT_COMMITTER_EMAIL": "benchmark@test.com",
}

# Lock files are noise in change logs.
EXCLUDED_FROM_DIFF = ("package-lock.json", "yarn.lock")


def run_git(*args: str, cwd: str | Path, check: bool = True) -> str:
    """Run a git command and return its stdout (not stripped)."""
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        check=check,
        env={**os.environ, **BENCHMARK_GIT_IDENTITY},
    )
    return result.stdout


def is_git_repo(path: str | Path) -> bool:
    return (Path(path) / ".git").exists()


def init_baseline(path: str | Path, message: str = "Initial commit - template setup") -> None:
    """Initialise a repository in *path* and commit everything as the baseline."""
    run_git("init", cwd=path)
    run_git("add", ".", cwd=path)
    run_git("commit", "-m", message, cwd=path)


def status_porcelain(path: str | Path) -> str:
    return run_git("status", "--porcelain", cwd=path, check=False)


def diff_against_head(path: str | Path) -> str:
    excludes = [f":(exclude){name}" for name in EXCLUDED_FROM_DIFF]
    return run_git("diff", "HEAD", "--", ".", *excludes, cwd=path, check=False)


def changed_files(path: str | Path) -> list[str]:
    """``git diff --name-status HEAD`` lines, lock files filtered out."""
    output = run_git("diff", "--name-status", "HEAD", cwd=path, check=False)
    return [
        line
        for line in output.splitlines()
        if line.strip() and not any(name in line for name in EXCLUDED_FROM_DIFF)
    ]
