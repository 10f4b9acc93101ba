"""HTTP tests for the AI endpoints, rate limiting and health checks."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.core.app_factory import create_app
from app.core.auth import caller_id_for_api_key
from app.core.config import settings
from app.core.errors import RateLimitStoreError, UpstreamError
from app.services.rate_limit_janitor import RateLimitJanitor
from app.services.retry_client import RetryClient, RetryPolicy

API_KEY = "test-api-key-123"
HEADERS = {"X-API-Key": API_KEY}

SUGGESTION = {
    "cleaning": "Saline 0.9% irrigation",
    "primary_dressing": "Hydrogel",
    "secondary_dressing": "Foam",
    "frequency": "Every 72 hours",
    "rationale": "Dry wound bed with granulation.",
}

ANALYSIS = {
    "tissue_types": {"necrotic": 0, "slough": 20, "granulation": 70, "epithelialization": 10},
    "exudate": "Baixo",
    "infection_signs": [],
    "wound_edges": [],
    "periwound_skin": ["Xerosis"],
    "notes": "",
}

TREATMENT_BODY = {
    "lesion": {"type": "Pé Diabético", "location": "Right hallux"},
    "current_assessment": {
        "width_mm": 12,
        "height_mm": 10,
        "depth_mm": 1,
        "exudate": "Baixo",
        "tissue_types": {"necrotic": 0, "slough": 20, "granulation": 70, "epithelialization": 10},
    },
}


class UnavailableStore(InMemoryRateLimitStore):
    def __init__(self) -> None:
        super().__init__()
        self.transactions = 0

    async def get(self, key):
        raise RateLimitStoreError(code="rate_limit_store_unavailable", message="down")

    async def run_transaction(self, key, update):
        self.transactions += 1
        raise RateLimitStoreError(code="rate_limit_store_unavailable", message="down")


@pytest.fixture
def llm() -> AsyncMock:
    mock = AsyncMock()
    mock.generate_json.return_value = SUGGESTION
    return mock


@pytest.fixture
def store() -> InMemoryRateLimitStore:
    return InMemoryRateLimitStore()


@pytest.fixture
def client(llm, store) -> TestClient:
    retry_client = RetryClient(RetryPolicy(max_retries=2), sleep=AsyncMock())
    app = create_app(llm_client=llm, rate_limit_store=store, retry_client=retry_client)
    return TestClient(app, raise_server_exceptions=False)


class TestTreatmentSuggestionRoute:
    """Test POST /v1/ai/treatment-suggestion."""

    def test_success(self, client: TestClient, llm: AsyncMock) -> None:
        response = client.post("/v1/ai/treatment-suggestion", json=TREATMENT_BODY, headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == SUGGESTION
        llm.generate_json.assert_awaited_once()

    def test_missing_api_key(self, client: TestClient, llm: AsyncMock) -> None:
        response = client.post("/v1/ai/treatment-suggestion", json=TREATMENT_BODY)

        assert response.status_code == 403
        assert "Missing API key" in response.json()["detail"]
        llm.generate_json.assert_not_awaited()

    def test_invalid_api_key(self, client: TestClient) -> None:
        response = client.post(
            "/v1/ai/treatment-suggestion",
            json=TREATMENT_BODY,
            headers={"X-API-Key": "nope"},
        )

        assert response.status_code == 403

    def test_invalid_body_is_422(self, client: TestClient) -> None:
        response = client.post(
            "/v1/ai/treatment-suggestion",
            json={"lesion": {"type": "Not a lesion type", "location": "x"}},
            headers=HEADERS,
        )

        assert response.status_code == 422

    def test_invalid_image_is_400(self, client: TestClient, llm: AsyncMock) -> None:
        body = {
            **TREATMENT_BODY,
            "current_assessment": {
                **TREATMENT_BODY["current_assessment"],
                "image_url": "data:image/png;base64,aGVsbG8=",
            },
        }

        response = client.post("/v1/ai/treatment-suggestion", json=body, headers=HEADERS)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "image_signature_mismatch"
        llm.generate_json.assert_not_awaited()

    def test_terminal_upstream_failure_is_502(self, client: TestClient, llm: AsyncMock) -> None:
        llm.generate_json.side_effect = UpstreamError(
            code="permission-denied", message="OpenAI API error: project has no access"
        )

        response = client.post("/v1/ai/treatment-suggestion", json=TREATMENT_BODY, headers=HEADERS)

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "permission-denied"
        assert "project has no access" not in error["message"]
        assert llm.generate_json.await_count == 1

    def test_retries_exhausted_is_503(self, client: TestClient, llm: AsyncMock) -> None:
        llm.generate_json.side_effect = UpstreamError(
            code="overloaded", message="OpenAI API error: 503"
        )

        response = client.post("/v1/ai/treatment-suggestion", json=TREATMENT_BODY, headers=HEADERS)

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "retries_exhausted"
        assert error["details"]["attempts"] == 3
        assert "temporarily overloaded" in error["message"]
        assert llm.generate_json.await_count == 3

    def test_transient_failure_recovers(self, client: TestClient, llm: AsyncMock) -> None:
        llm.generate_json.side_effect = [
            UpstreamError(code="deadline-exceeded", message="timeout"),
            SUGGESTION,
        ]

        response = client.post("/v1/ai/treatment-suggestion", json=TREATMENT_BODY, headers=HEADERS)

        assert response.status_code == 200
        assert llm.generate_json.await_count == 2


class TestImageAnalysisRoute:
    """Test POST /v1/ai/image-analysis."""

    def test_success(self, client: TestClient, llm: AsyncMock, png_data_url: str) -> None:
        llm.generate_json.return_value = ANALYSIS

        response = client.post(
            "/v1/ai/image-analysis",
            json={"base64_image_url": png_data_url},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["exudate"] == "Baixo"
        assert llm.generate_json.call_args.kwargs["images"] == [png_data_url]

    def test_malformed_data_url_is_400(self, client: TestClient) -> None:
        response = client.post(
            "/v1/ai/image-analysis",
            json={"base64_image_url": "https://example.com/photo.jpg"},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_image_format"


class TestRateLimiting:
    """Test quota enforcement at the HTTP layer."""

    def test_quota_exceeded_returns_429_with_headers(
        self, client: TestClient, llm: AsyncMock, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "treatment_max_requests", 2)

        for _ in range(2):
            ok = client.post("/v1/ai/treatment-suggestion", json=TREATMENT_BODY, headers=HEADERS)
            assert ok.status_code == 200

        response = client.post("/v1/ai/treatment-suggestion", json=TREATMENT_BODY, headers=HEADERS)

        assert response.status_code == 429
        error = response.json()["error"]
        assert error["code"] == "rate_limit_exceeded"
        assert "Limit of 2 requests per 60 seconds exceeded" in error["message"]
        assert error["details"]["limit"] == 2
        assert error["request_id"]
        assert int(response.headers["Retry-After"]) >= 1
        assert response.headers["X-RateLimit-Limit"] == "2"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert llm.generate_json.await_count == 2

    def test_endpoints_have_separate_buckets(
        self, client: TestClient, llm: AsyncMock, store, png_data_url: str, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "treatment_max_requests", 1)
        llm.generate_json.side_effect = [SUGGESTION, ANALYSIS]

        first = client.post("/v1/ai/treatment-suggestion", json=TREATMENT_BODY, headers=HEADERS)
        second = client.post(
            "/v1/ai/image-analysis",
            json={"base64_image_url": png_data_url},
            headers=HEADERS,
        )

        assert first.status_code == 200
        assert second.status_code == 200
        caller_id = caller_id_for_api_key(API_KEY)
        assert len(store) == 2
        assert store._records.keys() == {f"treatment:{caller_id}", f"image_analysis:{caller_id}"}

    def test_shared_bucket_counts_both_endpoints(
        self, client: TestClient, llm: AsyncMock, png_data_url: str, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "shared_bucket", True)
        monkeypatch.setattr(settings.rate_limit, "treatment_max_requests", 1)
        monkeypatch.setattr(settings.rate_limit, "image_analysis_max_requests", 1)

        first = client.post("/v1/ai/treatment-suggestion", json=TREATMENT_BODY, headers=HEADERS)
        second = client.post(
            "/v1/ai/image-analysis",
            json={"base64_image_url": png_data_url},
            headers=HEADERS,
        )

        assert first.status_code == 200
        assert second.status_code == 429

    def test_callers_have_separate_quotas(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "treatment_max_requests", 1)

        first = client.post("/v1/ai/treatment-suggestion", json=TREATMENT_BODY, headers=HEADERS)
        other = client.post(
            "/v1/ai/treatment-suggestion",
            json=TREATMENT_BODY,
            headers={"X-API-Key": "test-api-key-456"},
        )

        assert first.status_code == 200
        assert other.status_code == 200

    def test_disabled_rate_limit_never_throttles(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "enabled", False)
        monkeypatch.setattr(settings.rate_limit, "treatment_max_requests", 1)

        statuses = {
            client.post(
                "/v1/ai/treatment-suggestion", json=TREATMENT_BODY, headers=HEADERS
            ).status_code
            for _ in range(3)
        }

        assert statuses == {200}

    def test_store_outage_fails_open(self, llm: AsyncMock) -> None:
        store = UnavailableStore()
        app = create_app(
            llm_client=llm,
            rate_limit_store=store,
            retry_client=RetryClient(sleep=AsyncMock()),
        )
        client = TestClient(app)

        response = client.post("/v1/ai/treatment-suggestion", json=TREATMENT_BODY, headers=HEADERS)

        assert response.status_code == 200
        assert store.transactions == 1
        llm.generate_json.assert_awaited_once()

    def test_invalid_body_does_not_consume_quota(
        self, client: TestClient, store, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "treatment_max_requests", 1)

        rejected = client.post(
            "/v1/ai/treatment-suggestion", json={"bogus": 1}, headers=HEADERS
        )
        accepted = client.post("/v1/ai/treatment-suggestion", json=TREATMENT_BODY, headers=HEADERS)

        assert rejected.status_code == 422
        assert accepted.status_code == 200

    def test_invalid_image_does_not_consume_quota(
        self, client: TestClient, store, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "image_analysis_max_requests", 1)
        monkeypatch.setattr(settings.rate_limit, "treatment_max_requests", 1)

        bad_photo = client.post(
            "/v1/ai/image-analysis",
            json={"base64_image_url": "data:image/png;base64,aGVsbG8="},
            headers=HEADERS,
        )
        bad_attachment = client.post(
            "/v1/ai/treatment-suggestion",
            json={
                **TREATMENT_BODY,
                "current_assessment": {
                    **TREATMENT_BODY["current_assessment"],
                    "image_url": "data:image/png;base64,aGVsbG8=",
                },
            },
            headers=HEADERS,
        )

        assert bad_photo.status_code == 400
        assert bad_attachment.status_code == 400
        assert len(store) == 0
        assert client.post(
            "/v1/ai/treatment-suggestion", json=TREATMENT_BODY, headers=HEADERS
        ).status_code == 200


class TestHealthRoutes:
    """Test liveness and readiness."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_ready(self, client: TestClient) -> None:
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "rate_limit_store": "memory"}

    def test_ready_reports_store_outage(self, llm: AsyncMock) -> None:
        app = create_app(llm_client=llm, rate_limit_store=UnavailableStore())
        client = TestClient(app)

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["rate_limit_store"] == "unavailable"


def test_injected_empty_store_is_used(llm: AsyncMock) -> None:
    store = InMemoryRateLimitStore()
    retry_client = RetryClient(sleep=AsyncMock())

    app = create_app(llm_client=llm, rate_limit_store=store, retry_client=retry_client)

    assert len(store) == 0
    assert app.state.rate_limit_store is store
    assert app.state.treatment_service.llm is llm
    assert app.state.treatment_service.retry_client is retry_client


def test_openapi_documents_security_and_errors(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    assert "ApiKeyAuth" in schema["components"]["securitySchemes"]
    responses = schema["paths"]["/v1/ai/treatment-suggestion"]["post"]["responses"]
    assert {"429", "502", "503"} <= set(responses)
    assert schema["paths"]["/health"]["get"]["security"] == []


def test_lifespan_starts_janitor_and_closes_store(llm: AsyncMock, monkeypatch) -> None:
    started = []

    async def run_forever(self, interval_seconds):
        started.append(interval_seconds)
        await asyncio.Event().wait()

    monkeypatch.setattr(settings.rate_limit, "janitor_enabled", True)
    monkeypatch.setattr(RateLimitJanitor, "run_forever", run_forever)
    store = InMemoryRateLimitStore()
    store.close = AsyncMock()
    app = create_app(llm_client=llm, rate_limit_store=store)

    with TestClient(app) as lifespan_client:
        assert lifespan_client.get("/health").status_code == 200

    assert started == [settings.rate_limit.janitor_interval_seconds]
    store.close.assert_awaited_once()
