#!/usr/bin/env python3
"""
ATC Auth Client

Exchanges a username/password for a bearer token against the deployed
system's token endpoint and builds an HTTP client that sends that token.

Tokens are never cached: every call performs a fresh exchange, so a token
always belongs to exactly one (base URL, username, password) triple.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import requests
from pydantic import BaseModel, ValidationError
from requests.auth import AuthBase

from ..errors import AuthenticationError
from .api_client import ConcourseClient

logger = logging.getLogger(__name__)

TOKEN_PATH = "/sky/token"
CLIENT_ID = "fly"
CLIENT_SECRET = "Zmx5"
SCOPES = ["openid", "profile", "email", "federated:id"]


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None


class Token(BaseModel):
    """Bearer credential with an optional expiry."""

    access_token: str
    token_type: str = "Bearer"
    expiry: Optional[datetime] = None

    @classmethod
    def from_response(cls, payload: dict) -> "Token":
        response = TokenResponse.model_validate(payload)
        expiry = None
        if response.expires_in:
            expiry = datetime.now(timezone.utc) + timedelta(seconds=response.expires_in)

        token_type = response.token_type or "Bearer"
        if token_type.lower() == "bearer":
            token_type = "Bearer"

        return cls(access_token=response.access_token, token_type=token_type, expiry=expiry)

    def valid(self, now: Optional[datetime] = None) -> bool:
        if not self.access_token:
            return False
        if self.expiry is None:
            return True
        return (now or datetime.now(timezone.utc)) < self.expiry

    @property
    def authorization(self) -> str:
        return f"{self.token_type} {self.access_token}"


class BearerAuth(AuthBase):
    """Attach a bearer token to every request."""

    def __init__(self, token: Token):
        self.token = token

    def __call__(self, request):
        request.headers["Authorization"] = self.token.authorization
        return request


class AuthClient:
    def __init__(self, timeout: float = 10.0, verify: bool = False):
        self.timeout = timeout
        # Deployments under test serve self-signed certificates.
        self.verify = verify

    def fetch_token(self, base_url: str, username: str, password: str) -> Token:
        """Perform a password-grant exchange and return the resulting token."""
        url = base_url.rstrip("/") + TOKEN_PATH

        try:
            response = requests.post(
                url,
                data={
                    "grant_type": "password",
                    "username": username,
                    "password": password,
                    "scope": " ".join(SCOPES),
                },
                auth=(CLIENT_ID, CLIENT_SECRET),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
                verify=self.verify,
            )
        except requests.RequestException as e:
            raise AuthenticationError(f"token request to {url} failed: {e}", cause=e) from e

        if not 200 <= response.status_code < 300:
            raise AuthenticationError(
                f"token request to {url} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            token = Token.from_response(response.json())
        except (ValueError, ValidationError) as e:
            raise AuthenticationError(
                f"malformed token response from {url}: {e}",
                status_code=response.status_code,
                cause=e,
            ) from e

        logger.debug(f"Fetched token for {username} from {url}")
        return token

    def build_client(self, base_url: str, username: str, password: str) -> ConcourseClient:
        """Authenticate and return a client that sends the token on every request."""
        token = self.fetch_token(base_url, username, password)

        session = requests.Session()
        session.verify = self.verify
        session.auth = BearerAuth(token)
        return ConcourseClient(base_url, session, timeout=self.timeout)
