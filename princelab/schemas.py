from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class TextBody(_Lenient):
    body: str = ""


class InboundMessage(_Lenient):
    from_: str = Field(..., alias="from", description="Sender phone number (the user key)")
    id: Optional[str] = Field(None, description="WhatsApp message id")
    type: str = Field("text", description="Message type (text, image, ...)")
    text: Optional[TextBody] = None


class ChangeValue(_Lenient):
    messages: List[InboundMessage] = Field(default_factory=list)


class Change(_Lenient):
    value: ChangeValue = Field(default_factory=ChangeValue)


class Entry(_Lenient):
    changes: List[Change] = Field(default_factory=list)


class WebhookPayload(_Lenient):
    object: Optional[str] = None
    entry: List[Entry] = Field(default_factory=list)

    def first_message(self) -> Optional[InboundMessage]:
        """Return the first message of the first change of the first entry, if any."""
        if not self.entry or not self.entry[0].changes:
            return None
        messages = self.entry[0].changes[0].value.messages
        return messages[0] if messages else None


class StatsResponse(BaseModel):
    conversations: int = Field(..., description="Users with conversation history in memory")
    rate_limited_users: int = Field(..., description="Users tracked by the rate limiter")
    turns: int = Field(..., description="Stored turns across all users")
    summarised_users: int = Field(..., description="Users whose history carries a summary")
