"""
Pytest configuration and shared fixtures for bfc tests.
"""
import os
import shutil
import sys
from pathlib import Path

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

EXAMPLES = Path(__file__).resolve().parents[1] / "examples"


@pytest.fixture
def examples_dir() -> Path:
    return EXAMPLES


def c_compiler():
    return shutil.which(os.environ.get("BFC_CC", "cc"))
