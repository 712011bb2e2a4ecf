"""
JWT issuing and verification (PyJWT, HS256).
"""
from datetime import datetime, timedelta, timezone

import jwt

from config import settings

ALGORITHM = "HS256"


class TokenService:
    def __init__(
        self,
        access_secret: str = settings.JWT_ACCESS_SECRET,
        refresh_secret: str = settings.JWT_REFRESH_SECRET,
        issuer: str = settings.JWT_ISSUER,
    ):
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.issuer = issuer

    def _encode(self, payload: dict, secret: str, token_type: str, lifetime: timedelta) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            **payload,
            "type": token_type,
            "iss": self.issuer,
            "iat": now,
            "exp": now + lifetime,
        }
        return jwt.encode(claims, secret, algorithm=ALGORITHM)

    def _verify(self, token: str, secret: str, token_type: str) -> dict:
        try:
            decoded = jwt.decode(token, secret, algorithms=[ALGORITHM], issuer=self.issuer)
        except jwt.ExpiredSignatureError:
            return {"valid": False, "decoded": None, "expired": True, "error": "Token expired"}
        except jwt.InvalidTokenError as exc:
            return {"valid": False, "decoded": None, "expired": False, "error": str(exc)}
        if decoded.get("type") != token_type:
            return {"valid": False, "decoded": None, "expired": False, "error": "Invalid token type"}
        return {"valid": True, "decoded": decoded, "expired": False, "error": None}

    def generate_access_token(self, payload: dict) -> str:
        return self._encode(
            payload, self.access_secret, "access",
            timedelta(minutes=settings.JWT_ACCESS_EXPIRY_MINUTES),
        )

    def generate_refresh_token(self, payload: dict) -> str:
        return self._encode(
            payload, self.refresh_secret, "refresh",
            timedelta(days=settings.JWT_REFRESH_EXPIRY_DAYS),
        )

    def generate_reset_token(self, payload: dict) -> str:
        return self._encode(
            payload, self.access_secret, "reset",
            timedelta(minutes=settings.JWT_RESET_EXPIRY_MINUTES),
        )

    def generate_token_pair(self, payload: dict) -> dict:
        return {
            "access_token": self.generate_access_token(payload),
            "refresh_token": self.generate_refresh_token(payload),
            "token_type": "bearer",
            "expires_in": settings.JWT_ACCESS_EXPIRY_MINUTES * 60,
        }

    def verify_access_token(self, token: str) -> dict:
        return self._verify(token, self.access_secret, "access")

    def verify_refresh_token(self, token: str) -> dict:
        return self._verify(token, self.refresh_secret, "refresh")

    def verify_reset_token(self, token: str) -> dict:
        return self._verify(token, self.access_secret, "reset")


token_service = TokenService()
