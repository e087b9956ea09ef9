"""
Identity-provider (Clerk) webhook payloads as delivered through the job runner.
"""

from pydantic import BaseModel, ConfigDict
from typing import Optional


class EmailAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    email_address: str


class IdentityUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    email_addresses: list[EmailAddress] = []
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    @property
    def primary_email(self) -> Optional[str]:
        return self.email_addresses[0].email_address if self.email_addresses else None


class IdentityWebhookEvent(BaseModel):
    """`{"data": {...user...}, "object": "event", "type": "user.created"}`"""
    model_config = ConfigDict(extra="ignore")

    data: IdentityUser
    object: Optional[str] = None
    type: Optional[str] = None
