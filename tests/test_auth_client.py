"""Tests for token exchange and the authenticated ATC client"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from topgun.atc import AuthClient, ConcourseClient, GardenClient, Token
from topgun.errors import AuthenticationError


class TestToken:
    def test_normalises_bearer_type_and_expiry(self):
        token = Token.from_response({"access_token": "abc", "token_type": "bearer", "expires_in": 60})
        assert token.token_type == "Bearer"
        assert token.authorization == "Bearer abc"
        assert token.expiry > datetime.now(timezone.utc)
        assert token.valid()

    def test_expired_token_is_invalid(self):
        token = Token(access_token="abc", expiry=datetime.now(timezone.utc) - timedelta(seconds=1))
        assert not token.valid()

    def test_token_without_expiry_stays_valid(self):
        assert Token(access_token="abc").valid()


class TestFetchToken:
    def test_password_grant_against_live_endpoint(self, fake_atc):
        token = AuthClient().fetch_token(fake_atc.url, "test", "test")

        assert token.access_token == "tok-test"
        assert token.token_type == "Bearer"
        request = fake_atc.token_requests[-1]
        assert request["grant_type"] == "password"
        assert request["scope"] == "openid profile email federated:id"

    def test_tokens_are_not_cached(self, fake_atc):
        auth = AuthClient()
        auth.fetch_token(fake_atc.url, "test", "test")
        auth.fetch_token(fake_atc.url + "/", "test", "test")
        assert len(fake_atc.token_requests) == 2

    def test_invalid_credentials(self, fake_atc):
        with pytest.raises(AuthenticationError) as exc_info:
            AuthClient().fetch_token(fake_atc.url, "test", "wrong")
        assert exc_info.value.status_code == 401

    def test_invalid_credentials_build_no_client(self, fake_atc):
        client = None
        with pytest.raises(AuthenticationError):
            client = AuthClient().build_client(fake_atc.url, "nobody", "nothing")
        assert client is None

    def test_unreachable_endpoint(self, closed_port):
        with pytest.raises(AuthenticationError) as exc_info:
            AuthClient(timeout=2).fetch_token(f"http://127.0.0.1:{closed_port}", "test", "test")

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.cause, requests.ConnectionError)

    @patch("topgun.atc.auth_client.requests.post")
    def test_malformed_response(self, mock_post):
        mock_post.return_value = MagicMock(status_code=200, json=MagicMock(return_value={"unexpected": True}))

        with pytest.raises(AuthenticationError) as exc_info:
            AuthClient().fetch_token("http://atc", "test", "test")
        assert "malformed" in str(exc_info.value)

    @patch("topgun.atc.auth_client.requests.post")
    def test_non_json_response(self, mock_post):
        mock_post.return_value = MagicMock(status_code=200, json=MagicMock(side_effect=ValueError("not json")))

        with pytest.raises(AuthenticationError):
            AuthClient().fetch_token("http://atc", "test", "test")

    @patch("topgun.atc.auth_client.requests.post")
    def test_client_credentials_and_tls_policy(self, mock_post):
        mock_post.return_value = MagicMock(status_code=200, json=MagicMock(return_value={"access_token": "t"}))

        AuthClient(verify=False).fetch_token("https://atc/", "u", "p")

        args, kwargs = mock_post.call_args
        assert args[0] == "https://atc/sky/token"
        assert kwargs["auth"] == ("fly", "Zmx5")
        assert kwargs["verify"] is False


class TestConcourseClient:
    def test_bearer_token_sent_on_every_request(self, fake_atc):
        fake_atc.add_worker("worker-a")
        fake_atc.add_container("c-1", "worker-a")

        client = AuthClient().build_client(fake_atc.url, "test", "test")
        try:
            assert isinstance(client, ConcourseClient)
            assert [w.name for w in client.list_workers()] == ["worker-a"]
            assert client.list_workers()[0].garden_addr == fake_atc.address
            assert [c.id for c in client.list_containers()] == ["c-1"]
        finally:
            client.close()

    def test_unauthenticated_session_is_rejected(self, fake_atc):
        client = ConcourseClient(fake_atc.url, requests.Session())
        with pytest.raises(requests.HTTPError):
            client.list_workers()


class TestGardenClient:
    def test_destroy(self, fake_atc):
        GardenClient(fake_atc.address).destroy("c-1")
        assert fake_atc.destroyed == ["c-1"]

    def test_destroy_failure_raises(self, fake_atc):
        fake_atc.failing_handles.add("c-2")
        with pytest.raises(requests.HTTPError):
            GardenClient(fake_atc.address).destroy("c-2")
