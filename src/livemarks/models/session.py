"""Session model."""

from datetime import datetime, timezone
from uuid import NAMESPACE_URL, uuid5

from pydantic import BaseModel, Field, field_validator


def owner_id_for_email(email: str) -> str:
    """Derive the stable owner identifier for an email address."""
    return str(uuid5(NAMESPACE_URL, f"mailto:{email.strip().lower()}"))


class Session(BaseModel):
    """Authenticated identity of the signed-in user."""

    user_id: str = Field(..., min_length=1, description="Owner identifier")
    email: str = Field(..., description="Display email")
    signed_in_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Validate email has a local part and a domain."""
        v = v.strip().lower()
        local, sep, domain = v.partition("@")
        if not sep or not local or "." not in domain:
            raise ValueError(f"Invalid email address: {v!r}")

        return v

    @classmethod
    def for_email(cls, email: str) -> "Session":
        """Create a session for an email, deriving the owner identifier."""
        return cls(user_id=owner_id_for_email(email), email=email)
