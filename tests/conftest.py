"""
Pytest configuration and fixtures for Comic Catalog tests.
"""
import os

import pytest

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["MARVEL_PUBLIC_KEY"] = "test-public-key"
os.environ["MARVEL_PRIVATE_KEY"] = "test-private-key"
os.environ["REDIS_URL"] = ""

from comic_catalog.core.signing import MarvelRequestSigner  # noqa: E402
from tests.helpers import FakeRecordStore  # noqa: E402


@pytest.fixture
def store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def signer() -> MarvelRequestSigner:
    return MarvelRequestSigner(public_key="pub", private_key="priv")
