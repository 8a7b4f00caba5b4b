"""JWT verification against the identity provider's JWKS.

The IdP signs access tokens with a private RSA key and publishes the
public half at its JWKS endpoint. PyJWKClient fetches and caches the
key set; the token's `kid` header selects the signing key.
"""

from typing import Callable, Optional

import jwt
from jwt import PyJWKClient, PyJWKClientError

from taskboard.config import settings


class TokenError(Exception):
    """Raised when token verification fails."""


class TokenVerifier:
    """Verify access tokens issued by the IdP.

    key_resolver maps a raw token to the key that should verify it.
    By default it is backed by a caching PyJWKClient; tests pass a
    resolver returning a locally generated public key.
    """

    def __init__(
        self,
        jwks_uri: Optional[str] = None,
        *,
        algorithms: Optional[list[str]] = None,
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
        key_resolver: Optional[Callable[[str], object]] = None,
    ):
        self.algorithms = algorithms or settings.jwt_algorithms
        self.audience = audience if audience is not None else settings.jwt_audience
        self.issuer = issuer if issuer is not None else settings.jwt_issuer

        if key_resolver is None:
            client = PyJWKClient(
                jwks_uri or settings.jwks_uri,
                cache_keys=True,
                lifespan=settings.jwks_cache_seconds,
            )
            key_resolver = lambda token: client.get_signing_key_from_jwt(token).key
        self._resolve_key = key_resolver

    def verify(self, token: str) -> dict:
        """Verify and decode a token.

        Returns the claims dict on success.
        Raises TokenError on failure.
        """
        try:
            key = self._resolve_key(token)
        except (PyJWKClientError, jwt.DecodeError) as e:
            raise TokenError(f"Unable to resolve signing key: {e}")

        options = {"verify_aud": self.audience is not None}
        try:
            return jwt.decode(
                token,
                key,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                options=options,
            )
        except jwt.ExpiredSignatureError:
            raise TokenError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise TokenError(f"Invalid token: {e}")


_verifier: Optional[TokenVerifier] = None


def get_token_verifier() -> TokenVerifier:
    """FastAPI dependency — process-wide verifier, created on first use."""
    global _verifier
    if _verifier is None:
        _verifier = TokenVerifier()
    return _verifier
