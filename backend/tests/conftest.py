from datetime import date

import pytest
from fastapi.testclient import TestClient

from backend.app.config import Settings
from backend.app.schemas import UserProfile
from backend.tests.fakes import TODAY, USER_ID, FakeStore, StubExtractor

@pytest.fixture
def store():
    return FakeStore()

@pytest.fixture
def profile():
    """30-year-old male, 180 cm, on TODAY"""
    return UserProfile(id=USER_ID, birth_date=date(1994, 1, 1), height=180, sex="male")

@pytest.fixture
def extractor():
    return StubExtractor()

@pytest.fixture
def api(store, extractor):
    """TestClient with storage, extraction, auth and the clock overridden"""
    from backend.app import main

    main.app.dependency_overrides[main.get_settings] = lambda: Settings()
    main.app.dependency_overrides[main.find_store] = lambda: store
    main.app.dependency_overrides[main.find_extractor] = lambda: extractor
    main.app.dependency_overrides[main.get_current_user] = lambda: USER_ID
    main.app.dependency_overrides[main.get_today] = lambda: TODAY
    main.app.state.rate_limiter = main.RateLimiter()
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()
