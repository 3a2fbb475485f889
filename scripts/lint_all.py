#!/usr/bin/env python3
"""Run import sorting, formatting and the test suite.

Usage:
    python scripts/lint_all.py [--check] [--skip-tests]

Options:
    --check: Report formatting problems without rewriting files
    --skip-tests: Skip running pytest
"""

import argparse
import subprocess
import sys
from pathlib import Path
from typing import List

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent
SOURCE_DIRS = ["smartbuy", "tests", "scripts"]


def run_command(cmd: List[str], description: str) -> bool:
    """Run a command from the project root; True on exit code 0."""
    print(f"\n{'=' * 60}")
    print(f"Running: {description}")
    print(f"Command: {' '.join(cmd)}")
    print(f"{'=' * 60}\n")

    try:
        result = subprocess.run(cmd, cwd=PROJECT_ROOT, check=False)
    except FileNotFoundError as e:
        print(f"\nError: {e}")
        print("  Install the dev extra: pip install -e '.[dev,test]'\n")
        return False

    passed = result.returncode == 0
    status = "passed" if passed else f"failed (exit code: {result.returncode})"
    print(f"\n{description} {status}\n")
    return passed


def formatter_commands(check_mode: bool) -> List[tuple]:
    if check_mode:
        return [
            (["isort", "--check-only", "--diff", *SOURCE_DIRS], "isort (import sorting)"),
            (["black", "--check", *SOURCE_DIRS], "black (code formatting)"),
        ]
    return [
        (["isort", *SOURCE_DIRS], "isort (import sorting)"),
        (["black", *SOURCE_DIRS], "black (code formatting)"),
    ]


def main() -> int:
    """Run every check and return 0 only if all of them passed."""
    parser = argparse.ArgumentParser(description="Run formatting and test checks")
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only check formatting (don't modify files)",
    )
    parser.add_argument("--skip-tests", action="store_true", help="Skip running pytest")
    args = parser.parse_args()

    print("\n" + "=" * 60)
    print("SmartBuy Code Quality Checks")
    print("=" * 60)

    commands = formatter_commands(args.check)
    if not args.skip_tests:
        commands.append(([sys.executable, "-m", "pytest", "tests/", "-v"], "pytest (tests)"))

    results = [run_command(cmd, description) for cmd, description in commands]

    print("\n" + "=" * 60)
    if all(results):
        print("All checks passed!")
        print("=" * 60 + "\n")
        return 0
    print("Some checks failed. Please fix the issues above.")
    print("=" * 60 + "\n")
    return 1


if __name__ == "__main__":
    sys.exit(main())
