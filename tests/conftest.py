"""
tests/conftest.py

Shared fixtures.
"""

from __future__ import annotations

import pytest

from app.services.transform_service import TransformRepositories
from tests.fakes import (
    FakeInventoryStore,
    FakePosRepository,
    FakeRunRepository,
    FakeSalesStore,
    FakeSession,
    FakeUploadRepository,
)


@pytest.fixture()
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def repos() -> TransformRepositories:
    return TransformRepositories(
        uploads=FakeUploadRepository(),
        runs=FakeRunRepository(),
        inventory=FakeInventoryStore(),
        sales=FakeSalesStore(),
        pos=FakePosRepository(),
    )
