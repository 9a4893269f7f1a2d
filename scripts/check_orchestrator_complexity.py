#!/usr/bin/env python3
"""Complexity guard for application use-cases and the dispatcher."""

from __future__ import annotations

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
TARGETS = (
    ROOT / "src/doc_converter/application/use_cases.py",
    ROOT / "src/doc_converter/dispatch/dispatcher.py",
)
MAX_STATEMENTS = 20


def _functions(tree: ast.Module) -> list[ast.FunctionDef | ast.AsyncFunctionDef]:
    return [
        node
        for node in ast.walk(tree)
        if isinstance(node, ast.FunctionDef | ast.AsyncFunctionDef)
    ]


def main() -> None:
    """Fail when orchestrator functions exceed the statement threshold."""
    violations: list[str] = []
    for target in TARGETS:
        tree = ast.parse(target.read_text(encoding="utf-8"))
        for node in _functions(tree):
            stmt_count = len(node.body)
            if stmt_count > MAX_STATEMENTS:
                violations.append(f"{target.name}:{node.name}: {stmt_count} statements")
    if violations:
        raise SystemExit(
            "Use-case complexity threshold exceeded:\n"
            + "\n".join(f"- {v}" for v in violations)
        )
    print("Orchestrator complexity check passed.")


if __name__ == "__main__":
    main()
