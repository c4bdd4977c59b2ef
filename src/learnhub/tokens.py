"""Cognito access-token verification against the user pool JWKS."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Mapping
from urllib.request import urlopen

import jwt
from jwt.algorithms import RSAAlgorithm

from .errors import AuthenticationError

logger = logging.getLogger(__name__)

JWKS_TTL_SECONDS = 3600.0
_JWKS_TIMEOUT_SECONDS = 5


class InvalidTokenError(AuthenticationError):
    """Raised when a bearer token fails signature or claim checks."""


class TokenExpiredError(InvalidTokenError):
    """Raised when a bearer token is past its ``exp`` claim."""


def issuer_for(user_pool_id: str) -> str:
    region = user_pool_id.split("_", 1)[0]
    return f"https://cognito-idp.{region}.amazonaws.com/{user_pool_id}"


def fetch_jwks(url: str) -> Dict[str, Any]:
    with urlopen(url, timeout=_JWKS_TIMEOUT_SECONDS) as resp:  # pragma: no cover - network path
        return json.loads(resp.read().decode("utf-8"))


class CognitoTokenVerifier:
    """Verify RS256 access tokens issued by one user pool for one app client."""

    def __init__(
        self,
        *,
        user_pool_id: str,
        client_id: str,
        jwks_fetcher: Callable[[str], Mapping[str, Any]] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.user_pool_id = user_pool_id
        self.client_id = client_id
        self.issuer = issuer_for(user_pool_id)
        self._jwks_fetcher = jwks_fetcher or fetch_jwks
        self._clock = clock
        self._keys: Dict[str, Any] = {}
        self._fetched_at = 0.0

    def _signing_keys(self) -> Dict[str, Any]:
        now = self._clock()
        if self._keys and (now - self._fetched_at) < JWKS_TTL_SECONDS:
            return self._keys

        document = self._jwks_fetcher(f"{self.issuer}/.well-known/jwks.json")
        keys: Dict[str, Any] = {}
        for key_data in document.get("keys", []):
            kid = key_data.get("kid")
            if isinstance(kid, str):
                keys[kid] = RSAAlgorithm.from_jwk(json.dumps(key_data))
        self._keys = keys
        self._fetched_at = now
        return self._keys

    def verify(self, token: str) -> Dict[str, Any]:
        """Return the token claims or raise ``InvalidTokenError``."""
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as exc:
            raise InvalidTokenError("Invalid token", error=str(exc)) from exc

        if header.get("alg") != "RS256":
            raise InvalidTokenError("Invalid token", error="unexpected signing algorithm")

        public_key = self._signing_keys().get(header.get("kid"))
        if public_key is None:
            raise InvalidTokenError("Invalid token", error="signing key not found")

        try:
            claims = jwt.decode(
                token,
                public_key,
                algorithms=["RS256"],
                issuer=self.issuer,
                options={"verify_aud": False},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("Token expired", error=str(exc)) from exc
        except jwt.PyJWTError as exc:
            raise InvalidTokenError("Invalid token", error=str(exc)) from exc

        if claims.get("token_use") != "access":
            raise InvalidTokenError("Invalid token", error="token_use must be access")
        if claims.get("client_id") != self.client_id:
            raise InvalidTokenError("Invalid token", error="token issued for another client")
        return claims


def user_from_claims(claims: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "userId": claims.get("sub"),
        "username": claims.get("username") or claims.get("cognito:username"),
        "email": claims.get("email"),
        "clientId": claims.get("client_id") or claims.get("aud"),
    }
