#!/usr/bin/env python3
"""Architecture boundary checks."""

from __future__ import annotations

from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
PACKAGE = ROOT / "src/doc_converter"


def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def _assert_no_imports(path: Path, banned: list[str]) -> None:
    text = _read(path)
    for token in banned:
        if token in text:
            raise SystemExit(f"Architecture violation in {path}: found '{token}'")


def main() -> None:
    """Run repository architecture boundary checks."""
    # Optional codec libraries are imported lazily inside codec methods only.
    for path in PACKAGE.rglob("*.py"):
        if path.name == "codecs.py":
            continue
        _assert_no_imports(path, ["import pypdf", "from pypdf", "from PIL", "import PIL"])

    for layer in ("application", "engine", "dispatch"):
        for path in (PACKAGE / layer).glob("*.py"):
            _assert_no_imports(path, ["import typer", "from typer"])

    for path in (PACKAGE / "engine").glob("*.py"):
        _assert_no_imports(path, ["doc_converter.dispatch", "doc_converter.cli"])

    print("Architecture checks passed.")


if __name__ == "__main__":
    main()
