import pytest

from helpers import FakeMatrixClient


@pytest.fixture
def fake_client():
    return FakeMatrixClient()
