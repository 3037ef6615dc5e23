# taskrecall/infrastructure/auth.py
"""
Bearer-token authentication.

Tokens are HS256 JWTs as issued by Supabase Auth: the caller id is the `sub`
claim, expiry is always verified.
"""

import logging
from typing import List, Optional

import jwt

from taskrecall.domain.errors import Unauthorized
from taskrecall.domain.interfaces import AuthenticatorPort


logger = logging.getLogger(__name__)


class JwtAuthenticator(AuthenticatorPort):

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        audience: Optional[str] = None,
    ):
        if not secret:
            raise ValueError("JWT secret is required.")
        self._secret = secret
        self._algorithms: List[str] = [algorithm]
        self._audience = audience

    def authenticate(self, authorization: Optional[str]) -> str:
        if not authorization:
            raise Unauthorized("Missing authorization header.")

        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise Unauthorized("Invalid authorization header format.")

        try:
            payload = jwt.decode(
                token.strip(),
                self._secret,
                algorithms=self._algorithms,
                audience=self._audience,
                options={
                    "verify_exp": True,
                    "verify_aud": self._audience is not None,
                    "require": ["sub"],
                },
            )
        except jwt.ExpiredSignatureError as error:
            raise Unauthorized("Token has expired.") from error
        except jwt.InvalidTokenError as error:
            logger.warning("Invalid JWT token: %s", error)
            raise Unauthorized("Invalid token.") from error

        user_id = payload.get("sub")
        if not isinstance(user_id, str) or not user_id:
            raise Unauthorized("Invalid token payload.")
        return user_id
