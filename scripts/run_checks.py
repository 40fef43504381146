#!/usr/bin/env python3
"""Run repository checks: ruff, pyright and pytest.

Exits non-zero on the first failing step so CI and local hooks can rely on
the status code. Optional native backends (pyvips, pillow-heif) are not
required; their tests skip themselves when missing.
"""

from __future__ import annotations

import argparse
import subprocess
import sys


def run(cmd: list[str]) -> int:
    print("=>", " ".join(cmd))
    res = subprocess.run(cmd, check=False)
    return res.returncode


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--fix", action="store_true", help="Let ruff apply safe fixes")
    parser.add_argument("--no-types", action="store_true", help="Skip pyright")
    parser.add_argument("--no-tests", action="store_true", help="Skip pytest")
    parser.add_argument("pytest_args", nargs="*", help="Extra arguments passed to pytest")
    args = parser.parse_args()

    ruff = [sys.executable, "-m", "ruff", "check", "image_transcoder", "tests", "scripts"]
    if args.fix:
        ruff.append("--fix")
    steps: list[tuple[str, list[str]]] = [("ruff", ruff)]
    if not args.no_types:
        # pyright may only be on PATH on Windows
        steps.append(("pyright", [sys.executable, "-m", "pyright"] if sys.platform != "win32" else ["pyright"]))
    if not args.no_tests:
        steps.append(("pytest", [sys.executable, "-m", "pytest", *args.pytest_args]))

    for name, cmd in steps:
        rc = run(cmd)
        if rc != 0:
            print(f"{name} failed")
            return rc

    print("All checks passed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
