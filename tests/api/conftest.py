"""
API Test Layer Configuration

API Contract Tests
- Drive the FastAPI app in-process through httpx's ASGI transport
- Services are wired around in-memory doubles via dependency overrides
- Validate status codes and the result envelope, not business rules

Usage:
    pytest tests/api -v                    # Run all API tests
    pytest tests/api -v -k "bids"          # Run bid endpoint tests
    pytest tests/api -v --tb=short         # Short traceback
"""

from typing import Optional

import httpx
import pytest


class APIClient:
    """Thin wrapper adding the service prefix and caller identity headers"""

    def __init__(self, http_client: httpx.AsyncClient, api_path: str):
        self.client = http_client
        self.api_path = api_path

    def _headers(self, user_id: Optional[str], kwargs) -> dict:
        headers = dict(kwargs.pop("headers", None) or {})
        if user_id:
            headers["X-User-Id"] = user_id
        return headers

    async def get(self, path: str = "", user_id: Optional[str] = None, **kwargs) -> httpx.Response:
        headers = self._headers(user_id, kwargs)
        return await self.client.get(f"{self.api_path}{path}", headers=headers, **kwargs)

    async def post(self, path: str = "", user_id: Optional[str] = None, **kwargs) -> httpx.Response:
        headers = self._headers(user_id, kwargs)
        return await self.client.post(f"{self.api_path}{path}", headers=headers, **kwargs)

    async def get_raw(self, path: str = "", **kwargs) -> httpx.Response:
        """GET request to raw path (bypasses api_path)"""
        return await self.client.get(path, **kwargs)


class APIAssertions:
    """API-specific assertion helpers"""

    @staticmethod
    def assert_success(response: httpx.Response, expected_status: int = 200):
        """Assert response is successful and carries a success envelope"""
        assert response.status_code == expected_status, (
            f"Expected {expected_status}, got {response.status_code}: {response.text}"
        )
        assert response.json()["success"] is True

    @staticmethod
    def assert_error(response: httpx.Response, expected_status: int, expected_kind: str):
        """Assert the status code and the error kind in the envelope"""
        assert response.status_code == expected_status, (
            f"Expected {expected_status}, got {response.status_code}: {response.text}"
        )
        body = response.json()
        assert body["success"] is False
        assert body["error"] == expected_kind, f"Expected {expected_kind}, got {body['error']}"

    @staticmethod
    def assert_has_fields(data: dict, fields: list):
        """Assert response has required fields"""
        missing = [f for f in fields if f not in data]
        assert not missing, f"Missing fields: {missing}"


@pytest.fixture
def api_assert() -> APIAssertions:
    return APIAssertions()
