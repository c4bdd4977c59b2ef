"""Bearer-token authentication for protected routes."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, Mapping

from learnhub.config import require_setting
from learnhub.errors import AuthenticationError
from learnhub.tokens import CognitoTokenVerifier, user_from_claims


@lru_cache(maxsize=4)
def _verifier(user_pool_id: str, client_id: str) -> CognitoTokenVerifier:
    return CognitoTokenVerifier(user_pool_id=user_pool_id, client_id=client_id)


def token_verifier() -> CognitoTokenVerifier:
    return _verifier(require_setting("USER_POOL_ID"), require_setting("CLIENT_ID"))


def _gateway_claims(event: Mapping[str, Any]) -> Mapping[str, Any] | None:
    context = event.get("requestContext")
    if not isinstance(context, dict):
        return None
    authorizer = context.get("authorizer")
    if not isinstance(authorizer, dict):
        return None

    claims = authorizer.get("claims")
    if isinstance(claims, dict) and claims.get("sub"):
        return claims

    jwt_section = authorizer.get("jwt")
    if isinstance(jwt_section, dict):
        jwt_claims = jwt_section.get("claims")
        if isinstance(jwt_claims, dict) and jwt_claims.get("sub"):
            return jwt_claims
    return None


def authenticate(request: Any) -> Dict[str, Any]:
    """Return ``{userId, username, email, clientId}`` for the caller."""
    claims = _gateway_claims(request.event)
    if claims is not None:
        return user_from_claims(claims)

    token = request.bearer_token
    if token is None:
        raise AuthenticationError(
            "Please provide a valid Bearer token in Authorization header",
            error="Access token required",
        )
    return user_from_claims(token_verifier().verify(token))
