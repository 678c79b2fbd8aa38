import pytest
from fastapi.testclient import TestClient

from backend.app import main
from backend.app.config import Settings
from backend.app.rate_limiter import RateLimiter
from backend.tests.fakes import USER_ID, FakeStore, StubExtractor

@pytest.fixture
def secured():
    """Client with real authentication against a fake token table"""
    store = FakeStore()
    store.tokens["good-token"] = USER_ID
    settings = {"value": Settings()}

    main.app.dependency_overrides[main.find_store] = lambda: store
    main.app.dependency_overrides[main.find_extractor] = lambda: StubExtractor()
    main.app.dependency_overrides[main.get_settings] = lambda: settings["value"]
    yield TestClient(main.app), settings
    main.app.dependency_overrides.clear()

class TestSecurity:
    """Test security-related functionality"""

    def test_cors_allows_any_origin(self, secured):
        client, _ = secured
        response = client.get("/health/quick", headers={"Origin": "https://shortcuts.example"})
        assert response.headers["access-control-allow-origin"] == "*"

    @pytest.mark.parametrize("method,endpoint", [
        ("get", "/today"),
        ("get", "/events"),
        ("get", "/summaries"),
        ("get", "/exercises/progress"),
        ("get", "/profile"),
        ("get", "/trends"),
        ("get", "/routines"),
        ("post", "/log/text"),
        ("post", "/coach/insights"),
        ("delete", "/events/abc"),
    ])
    def test_authentication_required(self, secured, method, endpoint):
        client, _ = secured

        response = getattr(client, method)(endpoint)
        assert response.status_code == 401

        response = getattr(client, method)(endpoint, headers={"Authorization": "Bearer invalid-token"})
        assert response.status_code == 401

    def test_valid_token(self, secured):
        client, _ = secured
        response = client.get("/profile", headers={"Authorization": "Bearer good-token"})

        assert response.status_code == 200
        assert response.json()["profile"]["id"] == USER_ID

    def test_malformed_header(self, secured):
        client, _ = secured
        response = client.get("/profile", headers={"Authorization": "Token good-token"})
        assert response.status_code == 401

    def test_test_token_only_in_development(self, secured):
        client, settings = secured

        response = client.get("/profile", headers={"Authorization": "Bearer test-token"})
        assert response.status_code == 401

        settings["value"] = Settings(environment="development")
        response = client.get("/profile", headers={"Authorization": "Bearer test-token"})
        assert response.status_code == 200
        assert response.json()["profile"]["id"] == main.DEV_USER_ID

    def test_invalid_user_id_rejected(self, secured):
        client, _ = secured
        response = client.post("/voice-log", json={"userId": "../../etc", "text": "hola"})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid userId format"

    def test_oversized_text_rejected(self, secured):
        client, _ = secured
        response = client.post("/voice-log", json={"userId": USER_ID, "text": "a" * 3000})
        assert response.status_code == 400

class TestRateLimiter:
    def test_blocks_after_limit(self):
        now = [1000.0]
        limiter = RateLimiter({'default': (2, 60)}, clock=lambda: now[0])

        assert limiter.hit("user:a")[0]
        assert limiter.hit("user:a")[0]
        allowed, info = limiter.hit("user:a")

        assert not allowed
        assert info['retry_after'] == 60

    def test_window_slides(self):
        now = [1000.0]
        limiter = RateLimiter({'default': (1, 60)}, clock=lambda: now[0])

        assert limiter.hit("user:a")[0]
        now[0] += 61
        assert limiter.hit("user:a")[0]

    def test_limits_are_per_type_and_caller(self):
        limiter = RateLimiter({'default': (1, 60), 'log': (1, 60)})

        assert limiter.hit("user:a", 'log')[0]
        assert limiter.hit("user:a", 'default')[0]
        assert limiter.hit("user:b", 'log')[0]
        assert not limiter.hit("user:a", 'log')[0]

    def test_log_endpoint_returns_429(self, secured):
        client, _ = secured
        store = FakeStore()
        main.app.dependency_overrides[main.find_store] = lambda: store
        main.app.state.rate_limiter = RateLimiter({'default': (100, 60), 'log': (1, 60)})
        try:
            first = client.post("/voice-log", json={"userId": USER_ID, "text": "hola"})
            calls = list(store.calls)
            second = client.post("/voice-log", json={"userId": USER_ID, "text": "hola"})
        finally:
            main.app.state.rate_limiter = RateLimiter()

        assert first.status_code == 200
        assert second.status_code == 429
        assert "Retry-After" in second.headers
        assert second.json()["success"] is False
        assert second.json()["error"].startswith("Rate limit exceeded")
        assert store.calls == calls
