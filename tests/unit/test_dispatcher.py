"""Unit tests for preservica_client.dispatcher."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest
import respx
from structlog.testing import capture_logs

from preservica_client.dispatcher import (
    ACCESS_TOKEN_HEADER,
    JSON_CONTENT_TYPE,
    XML_CONTENT_TYPE,
    RetryDecision,
    RetryingDispatcher,
    classify,
)
from preservica_client.errors import ErrorCode, PreservicaClientError
from preservica_client.models.auth import SecretStage

if TYPE_CHECKING:
    from conftest import CountingCredentialProvider, RecordingSleep

    from preservica_client.auth import AuthManager

RESOURCE_URL = "https://preservica.test/api/entity/v7.0/information-objects/abc"

# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------


class TestClassify:
    @pytest.mark.parametrize("status", [200, 201, 204, 299])
    def test_success_stops(self, status: int) -> None:
        result = classify(status)
        assert result.decision is RetryDecision.STOP
        assert result.invalidate_auth is False

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_failure_continues_and_invalidates(self, status: int) -> None:
        result = classify(status)
        assert result.decision is RetryDecision.CONTINUE
        assert result.invalidate_auth is True

    @pytest.mark.parametrize("status", [400, 404, 429, 500, 503])
    def test_other_errors_continue_without_invalidation(self, status: int) -> None:
        result = classify(status)
        assert result.decision is RetryDecision.CONTINUE
        assert result.invalidate_auth is False

    def test_transport_error_continues(self) -> None:
        assert classify(None).decision is RetryDecision.CONTINUE


# ---------------------------------------------------------------------------
# RetryingDispatcher
# ---------------------------------------------------------------------------


class TestSend:
    async def test_sets_token_and_content_type(
        self, dispatcher: RetryingDispatcher, mock_api: respx.MockRouter
    ) -> None:
        route = mock_api.get(RESOURCE_URL).mock(return_value=httpx.Response(200, text="<ok/>"))

        response = await dispatcher.send("get", RESOURCE_URL)

        assert response.text == "<ok/>"
        request = route.calls.last.request
        assert request.method == "GET"
        assert request.headers[ACCESS_TOKEN_HEADER] == "test-token"
        assert request.headers["Content-Type"] == XML_CONTENT_TYPE

    async def test_json_content_type_and_body(
        self, dispatcher: RetryingDispatcher, mock_api: respx.MockRouter
    ) -> None:
        route = mock_api.put(RESOURCE_URL).mock(return_value=httpx.Response(200))

        await dispatcher.send(
            "PUT", RESOURCE_URL, body='{"a": 1}', content_type=JSON_CONTENT_TYPE
        )

        request = route.calls.last.request
        assert request.headers["Content-Type"] == JSON_CONTENT_TYPE
        assert request.content == b'{"a": 1}'

    async def test_no_sleep_on_first_success(
        self,
        dispatcher: RetryingDispatcher,
        mock_api: respx.MockRouter,
        sleeps: RecordingSleep,
    ) -> None:
        mock_api.get(RESOURCE_URL).mock(return_value=httpx.Response(200))
        await dispatcher.send("GET", RESOURCE_URL)
        assert sleeps.delays == []


class TestRetryBound:
    async def test_always_failing_endpoint_gets_max_retries_plus_one_attempts(
        self,
        dispatcher: RetryingDispatcher,
        mock_api: respx.MockRouter,
        sleeps: RecordingSleep,
    ) -> None:
        route = mock_api.get(RESOURCE_URL).mock(return_value=httpx.Response(500, text="boom"))

        with pytest.raises(PreservicaClientError) as exc_info:
            await dispatcher.send("GET", RESOURCE_URL)

        assert route.call_count == dispatcher.max_retries + 1
        error = exc_info.value
        assert error.status_code == 500
        assert error.method == "GET"
        assert error.url == RESOURCE_URL
        assert error.code == ErrorCode.HTTP_ERROR
        assert error.message == (
            f"Status code 500 calling {RESOURCE_URL} with method GET boom"
        )

    async def test_backoff_doubles_from_base_delay(
        self,
        dispatcher: RetryingDispatcher,
        mock_api: respx.MockRouter,
        sleeps: RecordingSleep,
    ) -> None:
        mock_api.get(RESOURCE_URL).mock(return_value=httpx.Response(503))

        with pytest.raises(PreservicaClientError):
            await dispatcher.send("GET", RESOURCE_URL)

        assert sleeps.delays == [1.0, 2.0, 4.0]

    async def test_zero_retries_means_one_attempt(
        self,
        http_client: httpx.AsyncClient,
        auth: AuthManager,
        mock_api: respx.MockRouter,
        sleeps: RecordingSleep,
    ) -> None:
        dispatcher = RetryingDispatcher(http_client, auth, max_retries=0, sleep=sleeps)
        route = mock_api.get(RESOURCE_URL).mock(return_value=httpx.Response(404))

        with pytest.raises(PreservicaClientError) as exc_info:
            await dispatcher.send("GET", RESOURCE_URL)

        assert route.call_count == 1
        assert exc_info.value.status_code == 404
        assert sleeps.delays == []

    async def test_error_carries_last_status(
        self, dispatcher: RetryingDispatcher, mock_api: respx.MockRouter
    ) -> None:
        mock_api.get(RESOURCE_URL).mock(
            side_effect=[
                httpx.Response(500),
                httpx.Response(502),
                httpx.Response(503),
                httpx.Response(404),
            ]
        )
        with pytest.raises(PreservicaClientError) as exc_info:
            await dispatcher.send("GET", RESOURCE_URL)
        assert exc_info.value.status_code == 404

    async def test_recovers_after_transient_failures(
        self,
        dispatcher: RetryingDispatcher,
        mock_api: respx.MockRouter,
        sleeps: RecordingSleep,
    ) -> None:
        mock_api.get(RESOURCE_URL).mock(
            side_effect=[httpx.Response(500), httpx.Response(200, text="done")]
        )
        response = await dispatcher.send("GET", RESOURCE_URL)
        assert response.text == "done"
        assert sleeps.delays == [1.0]

    async def test_transport_errors_are_retried(
        self, dispatcher: RetryingDispatcher, mock_api: respx.MockRouter
    ) -> None:
        route = mock_api.get(RESOURCE_URL).mock(
            side_effect=[httpx.ConnectError("refused"), httpx.Response(200)]
        )
        await dispatcher.send("GET", RESOURCE_URL)
        assert route.call_count == 2

    async def test_exhausted_transport_errors_raise_transport_error(
        self, dispatcher: RetryingDispatcher, mock_api: respx.MockRouter
    ) -> None:
        mock_api.get(RESOURCE_URL).mock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(PreservicaClientError) as exc_info:
            await dispatcher.send("GET", RESOURCE_URL)
        assert exc_info.value.code == ErrorCode.TRANSPORT_ERROR
        assert exc_info.value.status_code is None

    async def test_final_failure_logged_once_with_attempt_count(
        self, dispatcher: RetryingDispatcher, mock_api: respx.MockRouter
    ) -> None:
        mock_api.get(RESOURCE_URL).mock(return_value=httpx.Response(500))

        with capture_logs() as logs, pytest.raises(PreservicaClientError):
            await dispatcher.send("GET", RESOURCE_URL)

        failures = [entry for entry in logs if entry["event"] == "request_failed"]
        assert len(failures) == 1
        assert failures[0]["attempts"] == dispatcher.max_retries + 1
        assert failures[0]["status_code"] == 500


class TestAuthInvalidation:
    async def test_401_clears_caches_and_next_attempt_uses_fresh_token(
        self,
        dispatcher: RetryingDispatcher,
        provider: CountingCredentialProvider,
        mock_api: respx.MockRouter,
    ) -> None:
        mock_api["login"].mock(
            side_effect=[
                httpx.Response(200, json={"token": "stale-token"}),
                httpx.Response(200, json={"token": "fresh-token"}),
            ]
        )
        route = mock_api.get(RESOURCE_URL).mock(
            side_effect=[httpx.Response(401), httpx.Response(200, text="ok")]
        )

        response = await dispatcher.send("GET", RESOURCE_URL)

        assert response.text == "ok"
        tokens = [call.request.headers[ACCESS_TOKEN_HEADER] for call in route.calls]
        assert tokens == ["stale-token", "fresh-token"]
        # Credentials were looked up again, so both caches were cleared.
        assert provider.calls == [SecretStage.CURRENT, SecretStage.CURRENT]

    async def test_403_also_invalidates(
        self, dispatcher: RetryingDispatcher, mock_api: respx.MockRouter
    ) -> None:
        mock_api.get(RESOURCE_URL).mock(
            side_effect=[httpx.Response(403), httpx.Response(200)]
        )
        await dispatcher.send("GET", RESOURCE_URL)
        assert mock_api["login"].call_count == 2

    async def test_500_keeps_cached_token(
        self, dispatcher: RetryingDispatcher, mock_api: respx.MockRouter
    ) -> None:
        mock_api.get(RESOURCE_URL).mock(
            side_effect=[httpx.Response(500), httpx.Response(200)]
        )
        await dispatcher.send("GET", RESOURCE_URL)
        assert mock_api["login"].call_count == 1

    async def test_persistent_401_is_authorization_failure(
        self, dispatcher: RetryingDispatcher, mock_api: respx.MockRouter
    ) -> None:
        mock_api.get(RESOURCE_URL).mock(return_value=httpx.Response(401))
        with pytest.raises(PreservicaClientError) as exc_info:
            await dispatcher.send("GET", RESOURCE_URL)
        assert exc_info.value.code == ErrorCode.AUTHORIZATION_FAILED
        assert mock_api["login"].call_count == dispatcher.max_retries + 1


class TestConstruction:
    def test_negative_retries_rejected(
        self, http_client: httpx.AsyncClient, auth: AuthManager
    ) -> None:
        with pytest.raises(ValueError, match="max_retries"):
            RetryingDispatcher(http_client, auth, max_retries=-1)
