"""
Token Service - Player bearer tokens (HS256 JWT, subject = msisdn).
"""

from datetime import UTC, datetime, timedelta

import jwt

from luckybet.exceptions import AuthenticationError


class TokenService:
    """Issues and decodes player tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self.secret = secret
        self.algorithm = algorithm

    def issue(self, msisdn: str, lifetime_seconds: int) -> str:
        now = datetime.now(UTC)
        claims = {
            "sub": msisdn,
            "iat": now,
            "exp": now + timedelta(seconds=lifetime_seconds),
            "type": "player",
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def subject(self, token: str) -> str:
        """
        Verify the token and return its msisdn.

        Raises:
            AuthenticationError: expired, tampered or not a player token
        """
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("token expired") from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError("invalid token") from e

        msisdn = claims.get("sub")
        if claims.get("type") != "player" or not isinstance(msisdn, str) or not msisdn:
            raise AuthenticationError("invalid token subject")
        return msisdn
