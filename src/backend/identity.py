# ── src/backend/identity.py ───────────────────────────────────────────────────
"""
Federated identity: verify ID tokens minted by the external identity provider
(Firebase / Google Secure Token by default) against its published JWKS.

Only the contract lives here: signature, audience, issuer and expiry are
checked by PyJWT; the provider itself is external.
"""

from __future__ import annotations

from typing import Any, Dict, Protocol

import jwt


class InvalidIdentityToken(Exception):
    pass


class IdentityVerifier(Protocol):
    def verify(self, id_token: str) -> Dict[str, Any]:
        ...


class JwksIdentityVerifier:
    def __init__(self, jwks_url: str, project_id: str):
        self._jwks = jwt.PyJWKClient(jwks_url)
        self._audience = project_id
        self._issuer = f"https://securetoken.google.com/{project_id}"

    def verify(self, id_token: str) -> Dict[str, Any]:
        try:
            signing_key = self._jwks.get_signing_key_from_jwt(id_token)
            claims = jwt.decode(
                id_token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self._audience,
                issuer=self._issuer,
            )
        except (jwt.PyJWKClientError, jwt.InvalidTokenError) as e:
            raise InvalidIdentityToken(str(e)) from e

        uid = claims.get("user_id") or claims.get("sub")
        if not uid:
            raise InvalidIdentityToken("token has no subject")
        return {**claims, "uid": uid}


class UnconfiguredIdentityVerifier:
    """Used when IDENTITY_PROJECT_ID is unset: every federated login is refused."""

    def verify(self, id_token: str) -> Dict[str, Any]:
        raise InvalidIdentityToken("federated login is not configured")
