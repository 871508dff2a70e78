"""
Tests unitarios para GeoGuessrClient.

Se mockea requests.Session: ningún test sale a la red ni espera de verdad.
"""
from unittest.mock import Mock

import pytest
import requests

from geostats.infrastructure.external.geoguessr_sync.errors import (
    AuthError,
    GeoGuessrApiError,
    TransientFetchError,
)
from geostats.infrastructure.external.geoguessr_sync.geoguessr_client import (
    GeoGuessrClient,
    GeoGuessrCredentials,
)


def _response(status_code: int = 200, payload=None, headers=None, text: str = "") -> Mock:
    resp = Mock()
    resp.status_code = status_code
    resp.headers = headers or {}
    resp.text = text
    resp.json = Mock(return_value=payload if payload is not None else {})
    return resp


@pytest.fixture
def session() -> Mock:
    return Mock(spec=requests.Session)


@pytest.fixture
def sleeps() -> list:
    return []


@pytest.fixture
def client(session: Mock, sleeps: list) -> GeoGuessrClient:
    return GeoGuessrClient(
        GeoGuessrCredentials(session_cookie="_ncfa=secret"),
        session=session,
        base_url="https://geo.test/",
        max_retries=2,
        min_backoff_s=1.0,
        max_backoff_s=8.0,
        sleep=sleeps.append,
    )


class TestListPage:
    def test_first_page_without_cursor(self, client, session):
        session.request.return_value = _response(
            payload={"entries": [{"type": 1, "payload": "{}", "time": "t"}], "paginationToken": "next-1"}
        )

        page = client.list_page()

        kwargs = session.request.call_args.kwargs
        assert kwargs["url"] == "https://geo.test/api/v4/feed/private"
        assert kwargs["params"] == []
        assert kwargs["headers"]["Cookie"] == "_ncfa=secret"
        assert kwargs["timeout"] == 30
        assert len(page.entries) == 1
        assert page.next_cursor == "next-1"

    def test_cursor_is_sent_as_pagination_token(self, client, session):
        session.request.return_value = _response(payload={"entries": []})

        page = client.list_page("abc")

        assert session.request.call_args.kwargs["params"] == [("paginationToken", "abc")]
        assert page.next_cursor is None

    def test_non_object_body_is_api_error(self, client, session):
        session.request.return_value = _response(payload=[1, 2, 3])

        with pytest.raises(GeoGuessrApiError):
            client.list_page()


class TestRetries:
    def test_5xx_is_retried_then_succeeds(self, client, session, sleeps):
        session.request.side_effect = [
            _response(status_code=502),
            _response(payload={"token": "g1"}),
        ]

        assert client.fetch_detail("g1") == {"token": "g1"}
        assert session.request.call_count == 2
        assert sleeps == [pytest.approx(1.15)]

    def test_429_honours_retry_after_capped(self, client, session, sleeps):
        session.request.side_effect = [
            _response(status_code=429, headers={"Retry-After": "3"}),
            _response(status_code=429, headers={"Retry-After": "60"}),
            _response(payload={"token": "g1"}),
        ]

        client.fetch_detail("g1")

        assert sleeps == [3.0, 8.0]

    def test_network_errors_exhaust_into_transient_error(self, client, session, sleeps):
        session.request.side_effect = requests.ConnectionError("boom")

        with pytest.raises(TransientFetchError):
            client.list_page()

        # 1 intento + 2 reintentos
        assert session.request.call_count == 3
        assert len(sleeps) == 2

    @pytest.mark.parametrize(
        "error",
        [
            requests.exceptions.ChunkedEncodingError("conn broken"),
            requests.exceptions.ContentDecodingError("bad gzip"),
            requests.exceptions.TooManyRedirects("loop"),
        ],
    )
    def test_other_request_errors_exhaust_into_transient_error(self, client, session, sleeps, error):
        session.request.side_effect = error

        with pytest.raises(TransientFetchError) as exc_info:
            client.fetch_detail("g2")

        assert type(error).__name__ in str(exc_info.value)
        assert session.request.call_count == 3
        assert len(sleeps) == 2

    def test_body_cut_mid_transfer_is_retried(self, client, session, sleeps):
        session.request.side_effect = [
            requests.exceptions.ChunkedEncodingError("conn broken"),
            _response(payload={"token": "g2"}),
        ]

        assert client.fetch_detail("g2") == {"token": "g2"}
        assert len(sleeps) == 1

    def test_backoff_is_bounded(self, client):
        assert client._backoff_seconds(10, None) == pytest.approx(8.0 * 1.15)


class TestNonRetryable:
    @pytest.mark.parametrize("status_code", [401, 403])
    def test_auth_errors_fail_immediately(self, client, session, sleeps, status_code):
        session.request.return_value = _response(status_code=status_code)

        with pytest.raises(AuthError) as exc_info:
            client.list_page()

        assert exc_info.value.status_code == status_code
        assert session.request.call_count == 1
        assert sleeps == []

    def test_404_is_api_error_without_retry(self, client, session):
        session.request.return_value = _response(status_code=404, text="not found")

        with pytest.raises(GeoGuessrApiError) as exc_info:
            client.fetch_detail("missing")

        assert not isinstance(exc_info.value, AuthError)
        assert session.request.call_count == 1

    def test_invalid_json_is_api_error(self, client, session):
        resp = _response()
        resp.json.side_effect = ValueError("no json")
        session.request.return_value = resp

        with pytest.raises(GeoGuessrApiError):
            client.fetch_detail("g1")

    def test_empty_token_is_rejected(self, client, session):
        with pytest.raises(ValueError):
            client.fetch_detail("")
        session.request.assert_not_called()


class TestConnection:
    def test_connection_ok(self, client, session):
        session.request.return_value = _response(payload={"entries": []})
        assert client.test_connection() is True

    def test_connection_rejected(self, client, session):
        session.request.return_value = _response(status_code=401)
        assert client.test_connection() is False

    def test_credentials_repr_masks_cookie(self):
        assert "secret" not in repr(GeoGuessrCredentials(session_cookie="_ncfa=secret"))
