"""Bearer token schema."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class AuthToken(BaseModel):
    """Bearer token issued by a data source's Authenticate action."""

    model_config = ConfigDict(frozen=True)

    data_source_id: str = Field(..., description="Data source the token was issued by")
    token_value: SecretStr = Field(..., description="Bearer token; never logged")
    expires_at: datetime = Field(..., description="Absolute expiry (UTC)")
    token_type: str = Field(default="Bearer")

    def expires_within(self, margin_seconds: float, now: Optional[datetime] = None) -> bool:
        """Whether the token expires within margin_seconds of now."""
        now = now or datetime.now(timezone.utc)
        return self.expires_at - timedelta(seconds=margin_seconds) <= now

    def authorization_header(self) -> str:
        return f"Bearer {self.token_value.get_secret_value()}"
