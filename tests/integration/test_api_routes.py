"""
End-to-end tests for the HTTP API

Real SQLite mirror and credential store; Drive, Gemini and Google token
verification are replaced with scripted fakes.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import patch

import pytest
from conftest import (
    ACCOUNT,
    FakeDriveSession,
    FakeOAuthService,
    ScriptedLLM,
    drive_item,
    future,
    make_record,
    pages,
    seed,
)
from fastapi.testclient import TestClient

from driveq.analytics.insights import InsightsGenerator
from driveq.api.app import create_app
from driveq.api.dependencies import Services
from driveq.api.middleware.user_auth import AuthenticatedUser, get_current_user
from driveq.config import CLIENT_ORIGIN
from driveq.drive.client import ProviderError
from driveq.drive.oauth import OAuthConfigurationError
from driveq.infrastructure.rate_limiter import SlidingWindowRateLimiter
from driveq.llm.client import LLMAuthError, LLMError, LLMRateLimitError
from driveq.query.answer import AnswerGenerator
from driveq.query.classifier import IntentClassifier
from driveq.query.executor import IntentExecutor
from driveq.query.service import QueryService
from driveq.storage.cache import FingerprintCache
from driveq.storage.credentials_repository import CredentialNotFoundError
from driveq.sync.engine import SyncEngine


class StoreBackedOAuth(FakeOAuthService):
    """Fake OAuth service that writes through to the real credential store."""

    def __init__(self, credential_store, session):
        super().__init__(session)
        self.credential_store = credential_store

    def authorization_url(self, state=None):
        if not self.configured:
            raise OAuthConfigurationError("not configured")
        return "https://accounts.google.com/o/oauth2/auth?client_id=test&access_type=offline"

    def complete_authorization(self, code):
        if code == "bad":
            raise ValueError("Token exchange failed")
        self.credential_store.upsert(ACCOUNT, "access-1", future(), refresh_token="refresh-1")
        return ACCOUNT

    def revoke(self, account_id):
        return self.credential_store.delete(account_id)


@pytest.fixture
def api(credential_store, file_repo):
    credential_store.upsert(ACCOUNT, "access-1", future(), refresh_token="refresh-1")
    session = FakeDriveSession(pages=pages([drive_item("a")], [drive_item("b", size="2048")]))
    oauth = StoreBackedOAuth(credential_store, session)
    classifier_llm = ScriptedLLM('{"type": "count"}')
    answer_llm = ScriptedLLM("You have some files.")
    insights_llm = ScriptedLLM('{"insights": ["Mostly PDFs.", "Busy in March."]}')

    services = Services(
        credential_store=credential_store,
        file_repository=file_repo,
        oauth_service=oauth,
        sync_engine=SyncEngine(oauth, file_repo, credential_store),
        query_service=QueryService(
            IntentClassifier(llm=classifier_llm),
            IntentExecutor(file_repo),
            AnswerGenerator(llm=answer_llm),
        ),
        insights_generator=InsightsGenerator(FingerprintCache("insights", 300, 50), llm=insights_llm),
        query_limiter=SlidingWindowRateLimiter("query", 10, 60),
        insights_limiter=SlidingWindowRateLimiter("insights", 5, 60),
    )
    app = create_app(services=services)
    app.dependency_overrides[get_current_user] = lambda: AuthenticatedUser(id="1", email=ACCOUNT)

    with (
        patch("driveq.api.routes.query.is_llm_configured", return_value=True),
        patch("driveq.api.routes.analytics.is_llm_configured", return_value=True),
        TestClient(app) as client,
    ):
        yield SimpleNamespace(
            client=client,
            services=services,
            session=session,
            oauth=oauth,
            classifier_llm=classifier_llm,
            answer_llm=answer_llm,
            insights_llm=insights_llm,
        )


class TestHealth:
    def test_health(self, api):
        response = api.client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["oauth"] == {"ready": True}
        assert "ready" in body["llm"]

    def test_database_health(self, api):
        response = api.client.get("/health/db")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root_lists_endpoints(self, api):
        assert api.client.get("/").json()["endpoints"]["query"] == "/api/query"


class TestSync:
    def test_sync_then_status(self, api):
        response = api.client.post("/api/sync")

        assert response.status_code == 200
        assert response.json()["synced"] == 2
        assert response.json()["lastSyncedAt"] is not None

        status = api.client.get("/api/sync/status").json()
        assert status["fileCount"] == 2
        assert status["lastSyncedAt"] == response.json()["lastSyncedAt"]

    def test_status_before_first_sync(self, api):
        assert api.client.get("/api/sync/status").json() == {"fileCount": 0, "lastSyncedAt": None}

    def test_not_connected_is_401(self, api):
        api.oauth.open_error = CredentialNotFoundError(ACCOUNT)

        assert api.client.post("/api/sync").status_code == 401

    def test_drive_failure_is_502(self, api):
        api.session.pages = [ProviderError("Drive list failed", status_code=500)]

        response = api.client.post("/api/sync")

        assert response.status_code == 502
        assert "Drive list failed" not in response.text


class TestQuery:
    def test_answers_question(self, api):
        seed(api.services.file_repository, [make_record("a"), make_record("b")])

        response = api.client.post("/api/query", json={"question": "how many files do I have?"})

        assert response.status_code == 200
        body = response.json()
        assert body["intent"] == "count"
        assert body["total"] == 2
        assert body["answer"] == "You have some files."
        assert body["question"] == "how many files do I have?"

    @pytest.mark.parametrize("payload", [{}, {"question": ""}, {"question": "   "}])
    def test_empty_question_is_400(self, api, payload):
        response = api.client.post("/api/query", json=payload)

        assert response.status_code == 400
        assert api.classifier_llm.calls == []

    def test_empty_questions_do_not_consume_rate_limit(self, api):
        for _ in range(12):
            api.client.post("/api/query", json={"question": ""})

        assert api.client.post("/api/query", json={"question": "hi"}).status_code == 200

    def test_unconfigured_model_is_503(self, api):
        with patch("driveq.api.routes.query.is_llm_configured", return_value=False):
            response = api.client.post("/api/query", json={"question": "hi"})

        assert response.status_code == 503

    def test_rate_limited_after_ten_per_minute(self, api):
        statuses = [
            api.client.post("/api/query", json={"question": "hi"}).status_code for _ in range(11)
        ]

        assert statuses == [200] * 10 + [429]
        response = api.client.post("/api/query", json={"question": "hi"})
        assert int(response.headers["Retry-After"]) > 0

    @pytest.mark.parametrize("question", ["x" * 1001, 42, ["hi"], {"text": "hi"}])
    def test_invalid_question_is_400(self, api, question):
        response = api.client.post("/api/query", json={"question": question})

        assert response.status_code == 400

    @pytest.mark.parametrize(
        "error,expected",
        [
            (LLMRateLimitError("quota"), 429),
            (LLMAuthError("denied"), 503),
            (LLMError("boom"), 502),
        ],
    )
    def test_model_errors(self, api, error, expected):
        api.classifier_llm.responses = [error]

        response = api.client.post("/api/query", json={"question": "hi"})

        assert response.status_code == expected


class TestAnalytics:
    def test_analytics(self, api):
        seed(
            api.services.file_repository,
            [make_record("a", mime_type="A", size=10), make_record("b", mime_type="B", size=20)],
        )

        body = api.client.get("/api/analytics").json()

        assert body["totalFiles"] == 2
        assert body["totalSize"] == 30
        assert body["storageByType"] == [{"type": "B", "bytes": 20}, {"type": "A", "bytes": 10}]

    def test_insights_are_cached(self, api):
        first = api.client.get("/api/analytics/insights")
        second = api.client.get("/api/analytics/insights")

        assert first.status_code == second.status_code == 200
        assert first.json() == {"insights": ["Mostly PDFs.", "Busy in March."]}
        assert len(api.insights_llm.calls) == 1

    def test_cached_insights_still_count_against_limit(self, api):
        statuses = [api.client.get("/api/analytics/insights").status_code for _ in range(6)]

        assert statuses == [200] * 5 + [429]

    def test_unconfigured_model_is_503(self, api):
        with patch("driveq.api.routes.analytics.is_llm_configured", return_value=False):
            assert api.client.get("/api/analytics/insights").status_code == 503

    def test_malformed_insights_is_502(self, api):
        api.insights_llm.responses = ['{"insights": []}']

        assert api.client.get("/api/analytics/insights").status_code == 502


class TestFiles:
    @pytest.fixture(autouse=True)
    def files(self, api):
        seed(
            api.services.file_repository,
            [
                make_record(f"f{i}", name=f"doc {i}", modified_time=f"2024-01-{i + 10:02d}T00:00:00.000Z")
                for i in range(5)
            ],
        )

    def test_list_paginates(self, api):
        body = api.client.get("/api/files", params={"page": 2, "limit": 2}).json()

        assert body["total"] == 5
        assert body["page"] == 2
        assert [f["driveId"] for f in body["files"]] == ["f2", "f1"]

    def test_list_search_and_sort(self, api):
        body = api.client.get(
            "/api/files", params={"search": "doc 3", "sortBy": "name", "order": "asc"}
        ).json()

        assert [f["driveId"] for f in body["files"]] == ["f3"]

    def test_list_date_range(self, api):
        body = api.client.get("/api/files", params={"from": "2024-01-11", "to": "2024-01-12"}).json()

        assert sorted(f["driveId"] for f in body["files"]) == ["f1", "f2"]

    def test_limit_above_max_is_422(self, api):
        assert api.client.get("/api/files", params={"limit": 101}).status_code == 422

    def test_get_file(self, api):
        body = api.client.get("/api/files/f1").json()

        assert body["driveId"] == "f1"
        assert body["trashed"] is False
        assert "createdTime" in body

    def test_get_missing_file(self, api):
        assert api.client.get("/api/files/nope").status_code == 404

    def test_rename_writes_through(self, api):
        response = api.client.put("/api/files/f1", json={"name": "  renamed.txt "})

        assert response.status_code == 200
        assert response.json()["name"] == "renamed.txt"
        assert response.json()["modifiedTime"] == "2024-04-01T09:00:00.000Z"
        assert api.session.renamed == [("f1", "renamed.txt")]

    def test_rename_requires_name(self, api):
        assert api.client.put("/api/files/f1", json={"name": " "}).status_code == 400
        assert api.session.renamed == []

    def test_rename_missing_file(self, api):
        assert api.client.put("/api/files/nope", json={"name": "x"}).status_code == 404

    def test_rename_refused_by_drive_leaves_local_row(self, api, monkeypatch):
        def refuse(drive_id, name):
            raise ProviderError("Drive rename failed", status_code=403)

        monkeypatch.setattr(api.session, "rename_file", refuse)

        assert api.client.put("/api/files/f1", json={"name": "x"}).status_code == 502
        assert api.client.get("/api/files/f1").json()["name"] == "doc 1"

    def test_delete_moves_to_trash(self, api):
        response = api.client.delete("/api/files/f1")

        assert response.status_code == 204
        assert api.session.trashed == ["f1"]
        assert api.client.get("/api/files/f1").status_code == 404
        assert api.client.get("/api/files").json()["total"] == 4


class TestAuth:
    def test_consent_redirect(self, api):
        response = api.client.get("/api/auth/google", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"].startswith("https://accounts.google.com/")

    def test_consent_unconfigured(self, api):
        api.oauth.configured = False

        assert api.client.get("/api/auth/google", follow_redirects=False).status_code == 503

    def test_callback_success_redirects_to_client(self, api):
        response = api.client.get(
            "/api/auth/google/callback", params={"code": "good"}, follow_redirects=False
        )

        assert response.status_code == 302
        assert response.headers["location"] == CLIENT_ORIGIN

    @pytest.mark.parametrize("params", [{"code": "bad"}, {"error": "access_denied"}, {}])
    def test_callback_failure_redirects_with_error(self, api, params):
        response = api.client.get("/api/auth/google/callback", params=params, follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"].endswith("?error=oauth_failed")

    def test_status_connected(self, api):
        body = api.client.get("/api/auth/status").json()

        assert body["connected"] is True
        assert body["email"] == ACCOUNT
        assert body["hasRefreshToken"] is True

    def test_disconnect(self, api):
        response = api.client.delete("/api/auth/disconnect")

        assert response.json() == {"disconnected": True}
        assert api.client.get("/api/auth/status").json() == {"connected": False}
