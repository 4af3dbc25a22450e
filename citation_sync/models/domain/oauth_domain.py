# models/domain/oauth_domain.py
"""
In-memory OAuth access token held by providers that use the refresh-token grant.
"""

from datetime import UTC, datetime, timedelta

from pydantic import BaseModel


class AccessToken(BaseModel):
    """Bearer token obtained from a refresh-token exchange (never persisted)."""

    access_token: str
    token_type: str = "Bearer"
    expires_at: datetime | None = None

    @classmethod
    def from_token_response(cls, data: dict) -> "AccessToken":
        expires_in = data.get("expires_in")
        expires_at = None
        if expires_in:
            expires_at = datetime.now(UTC) + timedelta(seconds=int(expires_in))
        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type", "Bearer"),
            expires_at=expires_at,
        )

    def needs_refresh(self, buffer_minutes: int = 5) -> bool:
        """Check if token should be refreshed soon."""
        if not self.expires_at:
            return False
        buffer_time = datetime.now(UTC) + timedelta(minutes=buffer_minutes)
        return buffer_time >= self.expires_at
