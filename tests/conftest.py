from __future__ import annotations

import sys
from pathlib import Path

# Allow importing the modules when running plain `pytest` without an install.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from interpreter import Interpreter

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def run_program():
    def _run(source: str, *, verbose: bool = False, filename: str = "<string>"):
        interpreter = Interpreter(source=source, filename=filename, verbose=verbose)
        return interpreter.run()

    return _run


@pytest.fixture
def fixture_path():
    def _path(name: str) -> Path:
        return FIXTURES / name

    return _path
