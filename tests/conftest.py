"""Shared pytest fixtures for dimeval tests."""

import pytest

from dimeval.core.engine import Evaluator


@pytest.fixture
def evaluator() -> Evaluator:
    """Return an evaluator with the default physical constants."""
    return Evaluator()
