"""Pydantic models for the Microsoft Graph message and delta page shapes (subset we need)."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class EmailAddress(BaseModel):
    """Graph emailAddress."""

    address: str = ""
    name: Optional[str] = None


class Recipient(BaseModel):
    """Graph recipient (from, toRecipients, etc.)."""

    emailAddress: EmailAddress


class ItemBody(BaseModel):
    """Graph itemBody (message body)."""

    contentType: str = "text"  # "text" | "html"
    content: str = ""


class InternetMessageHeader(BaseModel):
    name: str = ""
    value: str = ""


class GraphMessage(BaseModel):
    """Microsoft Graph message resource (subset). Delta tombstones carry `@removed`."""

    id: str
    conversationId: Optional[str] = None
    internetMessageId: Optional[str] = None
    receivedDateTime: Optional[str] = None  # ISO 8601
    sentDateTime: Optional[str] = None
    subject: Optional[str] = ""
    body: ItemBody = ItemBody()
    bodyPreview: Optional[str] = None
    from_: Optional[Recipient] = Field(None, alias="from")
    toRecipients: list[Recipient] = []
    ccRecipients: list[Recipient] = []
    bccRecipients: list[Recipient] = []
    isRead: bool = False
    hasAttachments: bool = False
    importance: Optional[str] = "normal"
    internetMessageHeaders: list[InternetMessageHeader] = []
    removed: Optional[dict[str, Any]] = Field(None, alias="@removed")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @property
    def is_removed(self) -> bool:
        return self.removed is not None


class DeltaPage(BaseModel):
    """One raw page of a delta query.

    `next_cursor` is the nextLink while more pages follow, else the deltaLink to store
    for the next run.
    """

    messages: list[GraphMessage] = []
    next_cursor: Optional[str] = None
    has_more: bool = False
