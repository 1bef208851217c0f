"""Map Graph messages and delta pages to normalized Message / DeltaBatch models."""

from datetime import datetime, timezone
from typing import Optional
from urllib.parse import parse_qs, urlparse

from mailcase.mail_provider.graph_models import DeltaPage, GraphMessage, Recipient
from mailcase.models.message import EmailAddress, Message
from mailcase.models.sync import DeltaBatch
from mailcase.threads.assembler import parse_message_headers
from mailcase.utils.body_text import body_to_text, make_preview


def _parse_datetime(s: str | None) -> Optional[datetime]:
    """ISO 8601 to an aware UTC datetime; naive values are taken as UTC."""
    if not s:
        return None
    try:
        value = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _address(recipient: Recipient | None) -> EmailAddress | None:
    if recipient is None or not recipient.emailAddress.address:
        return None
    name = (recipient.emailAddress.name or "").strip() or None
    return EmailAddress(address=recipient.emailAddress.address.strip(), name=name)


def _addresses(recipients: list[Recipient]) -> list[EmailAddress]:
    return [a for a in (_address(r) for r in recipients) if a is not None]


def graph_message_to_message(msg: GraphMessage, user_id: str, firm_id: str) -> Message:
    """Normalize one Graph message for storage; classification starts at Pending.

    The body is stored as plain text; a missing preview is derived from it.
    """
    content_type = (msg.body.contentType or "text").lower()
    body_text = body_to_text(msg.body.content, content_type)
    preview = (msg.bodyPreview or "").strip() or make_preview(msg.body.content, content_type)
    headers = parse_message_headers([h.model_dump() for h in msg.internetMessageHeaders])
    received = _parse_datetime(msg.receivedDateTime) or _parse_datetime(msg.sentDateTime)
    return Message(
        id=msg.id,
        conversation_id=(msg.conversationId or "").strip() or None,
        internet_message_id=msg.internetMessageId,
        subject=msg.subject or "",
        body_preview=preview,
        body_content=body_text,
        body_content_type="text",
        sender=_address(msg.from_),
        to_recipients=_addresses(msg.toRecipients),
        cc_recipients=_addresses(msg.ccRecipients),
        bcc_recipients=_addresses(msg.bccRecipients),
        received_at=received or datetime.now(timezone.utc),
        sent_at=_parse_datetime(msg.sentDateTime),
        has_attachments=msg.hasAttachments,
        importance=(msg.importance or "normal").lower(),
        is_read=msg.isRead,
        in_reply_to=headers.in_reply_to,
        references=headers.references,
        user_id=user_id,
        firm_id=firm_id,
    )


def delta_page_to_batch(page: DeltaPage, user_id: str, firm_id: str) -> DeltaBatch:
    """Normalize a raw page. Removed items are dropped (their ids are reported, no tombstones)."""
    messages = []
    removed_ids = []
    for msg in page.messages:
        if msg.is_removed:
            removed_ids.append(msg.id)
            continue
        messages.append(graph_message_to_message(msg, user_id, firm_id))
    return DeltaBatch(
        messages=messages,
        next_cursor=page.next_cursor,
        has_more=page.has_more,
        removed_ids=removed_ids,
    )


def extract_delta_token(link: str | None) -> str:
    """The `$deltatoken` value of a deltaLink, or "" when there is none."""
    if not link:
        return ""
    try:
        values = parse_qs(urlparse(link).query).get("$deltatoken")
    except ValueError:
        values = None
    return values[0] if values else ""
