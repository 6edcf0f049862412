"""Shared fixtures for gree_ac tests."""
from __future__ import annotations

import pytest

from common import FakeTransport


@pytest.fixture
def transport():
    return FakeTransport()
