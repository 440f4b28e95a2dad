#!/usr/bin/env python3
"""
Oracle test runner.

Executes YAML scenario files against a :class:`Redsock` client talking to a
fresh :class:`FakeServer`, and reports pass/fail results with detailed error
messages.

Usage:
    redsock-oracle                              # Run oracle/spec/*.yaml
    redsock-oracle oracle/spec/strings.yaml     # Run single spec
    redsock-oracle -v                           # Verbose output

Spec format:
    name: strings
    tests:
      - name: set then get
        setup:
          - {cmd: set, args: [a, hello]}
        operations:
          - {cmd: get, args: [a], expect: hello}
"""

import argparse
import sys
from pathlib import Path
from typing import Any, List

import yaml

from . import exceptions
from .client import Redsock
from .testing import FakeServer

DEFAULT_SPEC_DIR = Path("oracle") / "spec"

# Client methods a scenario may call.
COMMANDS = frozenset(
    [
        "ping", "exists", "remove", "delete", "type", "keys", "randomkey",
        "rename", "renamenx", "dbsize", "expire", "expireat", "ttl", "select",
        "set", "setnx", "get", "get_string", "getset", "getset_string", "mget",
        "mget_strings", "incr", "incrby", "decr", "decrby", "move",
        "push", "lpush", "rpush", "lset", "llen", "lrange", "lrange_strings",
        "lindex", "lindex_string", "pop", "pop_string", "ltrim",
        "sadd", "srem", "scard", "sismember", "sinter", "sinter_strings",
        "smembers", "smembers_strings", "sort", "sort_strings",
        "save", "bgsave", "lastsave", "info", "execute",
    ]
)


class OracleRunner:
    """Executes oracle test specifications against the client."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.passed = 0
        self.failed = 0
        self.errors: List[dict] = []

    def run_spec_file(self, spec_path: Path) -> bool:
        """Run all tests in a specification file."""
        with open(spec_path) as f:
            spec = yaml.safe_load(f)

        spec_name = spec.get("name", Path(spec_path).name)
        tests = spec.get("tests", [])

        if self.verbose:
            print(f"\n{'=' * 60}")
            print(f"Running: {spec_name} ({len(tests)} tests)")
            print("=" * 60)

        errors_before = len(self.errors)
        for test in tests:
            self._run_test(test, spec_name)

        return len(self.errors) == errors_before

    def _run_test(self, test: dict, spec_name: str) -> None:
        """Run a single test case against a fresh server."""
        test_name = test.get("name", "unnamed")

        if self.verbose:
            print(f"\n  {test_name}...", end=" ")

        with FakeServer() as server, server.client() as db:
            try:
                for op in test.get("setup", []):
                    self._execute_cmd(db, op)

                for op in test["operations"]:
                    expected = op.get("expect")
                    if isinstance(expected, dict) and "raises" in expected:
                        actual = self._expect_raise(db, op, expected["raises"])
                    else:
                        actual = self._execute_cmd(db, op)

                    if not self._compare(actual, expected):
                        self._fail(spec_name, test_name, op, expected, actual)
                        return

                self.passed += 1
                if self.verbose:
                    print("PASSED")

            except Exception as e:
                self.failed += 1
                self.errors.append({
                    "spec": spec_name,
                    "test": test_name,
                    "error": f"{type(e).__name__}: {e}",
                })
                if self.verbose:
                    print(f"ERROR: {e}")

    def _fail(self, spec_name: str, test_name: str, op: dict, expected: Any, actual: Any) -> None:
        self.failed += 1
        self.errors.append({
            "spec": spec_name,
            "test": test_name,
            "cmd": op["cmd"],
            "args": op.get("args", []),
            "expected": expected,
            "actual": self._serialize(actual),
        })
        if self.verbose:
            print("FAILED")
            print(f"      Expected: {expected}")
            print(f"      Actual:   {self._serialize(actual)}")

    def _execute_cmd(self, db: Redsock, op: dict) -> Any:
        """Execute a command against the client."""
        cmd = op["cmd"].lower()
        if cmd not in COMMANDS:
            raise ValueError(f"Unknown command: {cmd}")
        args = [self._process_arg(a) for a in op.get("args", [])]
        kwargs = op.get("kwargs", {})
        return getattr(db, cmd)(*args, **kwargs)

    def _expect_raise(self, db: Redsock, op: dict, error_name: str) -> Any:
        """Run an operation that should fail; returns the error class name or the result."""
        error_class = getattr(exceptions, error_name)
        try:
            result = self._execute_cmd(db, op)
        except error_class:
            return {"raises": error_name}
        return result

    def _process_arg(self, arg: Any) -> Any:
        """Process argument, handling special types."""
        if isinstance(arg, dict):
            if "bytes" in arg:
                return bytes(arg["bytes"])
        if isinstance(arg, list):
            return [self._process_arg(a) for a in arg]
        return arg

    def _compare(self, actual: Any, expected: Any) -> bool:
        """Compare actual result with expected value."""
        if expected is None:
            return actual is None

        if isinstance(expected, dict):
            return self._compare_special(actual, expected)

        if isinstance(expected, bool):
            return actual is expected

        if isinstance(expected, int):
            return not isinstance(actual, bool) and actual == expected

        if isinstance(expected, str):
            # String comparison - actual might be bytes
            if isinstance(actual, bytes):
                return actual.decode("utf-8", errors="replace") == expected
            return isinstance(actual, str) and actual == expected

        if isinstance(expected, list):
            if not isinstance(actual, (list, tuple)):
                return False
            if len(actual) != len(expected):
                return False
            return all(self._compare(a, e) for a, e in zip(actual, expected))

        return actual == expected

    def _compare_special(self, actual: Any, expected: dict) -> bool:
        """Compare with special expectation types."""
        if "raises" in expected:
            return actual == expected

        if "bytes" in expected:
            return isinstance(actual, bytes) and actual == bytes(expected["bytes"])

        if "set" in expected:
            # Unordered comparison
            if not isinstance(actual, (list, tuple, set)):
                return False
            actual_set = {
                v.decode("utf-8", errors="replace") if isinstance(v, bytes) else v
                for v in actual
            }
            return actual_set == set(expected["set"])

        if "dict" in expected:
            return isinstance(actual, dict) and all(
                actual.get(k) == v for k, v in expected["dict"].items()
            )

        if "type" in expected:
            # Type check only
            type_map = {
                "bytes": bytes,
                "str": str,
                "int": int,
                "list": (list, tuple),
                "dict": dict,
            }
            return isinstance(actual, type_map[expected["type"]])

        if "name" in expected:
            # Enum member name, e.g. KeyType.LIST
            return getattr(actual, "name", None) == expected["name"]

        if "contains" in expected:
            # Substring match
            return expected["contains"] in str(actual)

        return False

    def _serialize(self, value: Any) -> Any:
        """Serialize value for error reporting."""
        if isinstance(value, bytes):
            try:
                return value.decode("utf-8")
            except UnicodeDecodeError:
                return f"<bytes: {list(value)}>"
        if isinstance(value, (list, tuple)):
            return [self._serialize(v) for v in value]
        if isinstance(value, dict):
            return {self._serialize(k): self._serialize(v) for k, v in value.items()}
        return value

    def summary(self) -> str:
        """Return test summary."""
        total = self.passed + self.failed
        return f"{self.passed}/{total} passed, {self.failed} failed"


def main():
    parser = argparse.ArgumentParser(description="Run oracle scenarios against a fake server")
    parser.add_argument("specs", nargs="*", help="Spec files to run (default: all)")
    parser.add_argument(
        "--spec-dir",
        type=Path,
        default=DEFAULT_SPEC_DIR,
        help=f"Directory searched when no spec files are given (default: {DEFAULT_SPEC_DIR})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    args = parser.parse_args()

    if args.specs:
        spec_files = [Path(s) for s in args.specs]
    else:
        spec_files = sorted(args.spec_dir.glob("*.yaml"))

    runner = OracleRunner(verbose=args.verbose)

    for spec_file in spec_files:
        runner.run_spec_file(spec_file)

    print(f"\n{'=' * 60}")
    print(f"Oracle Test Results: {runner.summary()}")
    print("=" * 60)

    if runner.errors:
        print("\nFailures:")
        for err in runner.errors:
            if "error" in err:
                print(f"  - {err['spec']} / {err['test']}: {err['error']}")
            else:
                print(f"  - {err['spec']} / {err['test']} / {err['cmd']}")
                print(f"      Expected: {err['expected']}")
                print(f"      Actual:   {err['actual']}")
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
