"""Real Microsoft Graph mail provider (async delta queries on one mail folder)."""

import asyncio
from typing import Optional

from msgraph import GraphServiceClient
from msgraph.generated.models.body_type import BodyType
from msgraph.generated.models.message import Message as GraphSDKMessage
from msgraph.generated.models.recipient import Recipient as GraphSDKRecipient
from msgraph.generated.users.item.mail_folders.item.messages.delta.delta_request_builder import (
    DeltaRequestBuilder,
)

from mailcase.auth.token_cache import DELEGATED_SCOPES, get_persistent_device_code_credential
from mailcase.config import GRAPH_MAIL_FOLDER, SYNC_FETCH_BASE_DELAY, SYNC_FETCH_MAX_ATTEMPTS
from mailcase.mail_provider.graph_models import (
    DeltaPage,
    EmailAddress,
    GraphMessage,
    InternetMessageHeader,
    ItemBody,
    Recipient,
)
from mailcase.utils.logger import get_logger

logger = get_logger("mailcase.graph_provider")

DELTA_SELECT_FIELDS = [
    "id",
    "conversationId",
    "internetMessageId",
    "subject",
    "bodyPreview",
    "body",
    "from",
    "toRecipients",
    "ccRecipients",
    "bccRecipients",
    "receivedDateTime",
    "sentDateTime",
    "hasAttachments",
    "importance",
    "isRead",
]


def _is_transient_network_error(e: Exception) -> bool:
    """True for I/O and connection errors worth retrying (httpx/httpcore resets, timeouts)."""
    name = type(e).__name__
    if name in (
        "WriteError",
        "ReadError",
        "ConnectError",
        "ConnectionResetError",
        "ConnectionError",
        "TimeoutError",
        "ReadTimeout",
        "ConnectTimeout",
        "LocalProtocolError",
        "RemoteProtocolError",
    ):
        return True
    if isinstance(e, OSError) and getattr(e, "winerror", None) == 10054:
        return True
    # Throttling and gateway errors surface as APIError with a status code
    return getattr(e, "response_status_code", None) in (429, 502, 503, 504)


def _convert_recipients(recipients: list[GraphSDKRecipient] | None) -> list[Recipient]:
    out = []
    for r in recipients or []:
        if r.email_address:
            out.append(
                Recipient(
                    emailAddress=EmailAddress(
                        address=r.email_address.address or "",
                        name=r.email_address.name,
                    )
                )
            )
    return out


def _convert_sdk_message(msg: GraphSDKMessage) -> GraphMessage:
    """Convert an SDK message (or delta tombstone) to our GraphMessage model."""
    additional = getattr(msg, "additional_data", None) or {}
    removed = additional.get("@removed")
    if removed is not None:
        return GraphMessage(id=msg.id or "", removed=removed)

    from_recipient = None
    if msg.from_ and msg.from_.email_address:
        from_recipient = Recipient(
            emailAddress=EmailAddress(
                address=msg.from_.email_address.address or "",
                name=msg.from_.email_address.name,
            )
        )
    body = ItemBody()
    if msg.body:
        body = ItemBody(
            contentType="html" if msg.body.content_type == BodyType.Html else "text",
            content=msg.body.content or "",
        )
    importance = msg.importance.value if msg.importance is not None else "normal"
    return GraphMessage(
        id=msg.id or "",
        conversationId=msg.conversation_id,
        internetMessageId=msg.internet_message_id,
        receivedDateTime=msg.received_date_time.isoformat() if msg.received_date_time else None,
        sentDateTime=msg.sent_date_time.isoformat() if msg.sent_date_time else None,
        subject=msg.subject or "",
        body=body,
        bodyPreview=msg.body_preview,
        from_=from_recipient,
        toRecipients=_convert_recipients(msg.to_recipients),
        ccRecipients=_convert_recipients(msg.cc_recipients),
        bccRecipients=_convert_recipients(msg.bcc_recipients),
        isRead=bool(msg.is_read),
        hasAttachments=bool(msg.has_attachments),
        importance=importance,
        internetMessageHeaders=[
            InternetMessageHeader(name=h.name or "", value=h.value or "")
            for h in (msg.internet_message_headers or [])
        ],
    )


class GraphProvider:
    """Microsoft Graph provider using delegated (user sign-in) auth with an MSAL token cache.

    Reads the signed-in user's mailbox via /me. The cursor is the full nextLink or
    deltaLink URL returned by Graph.
    """

    def __init__(self, tenant_id: str, client_id: str, mail_folder: str = GRAPH_MAIL_FOLDER):
        credential = get_persistent_device_code_credential(tenant_id=tenant_id, client_id=client_id)
        self._client = GraphServiceClient(credentials=credential, scopes=DELEGATED_SCOPES)
        self._mail_folder = mail_folder
        logger.info("graph_provider.init", tenant_id=tenant_id[:8], mail_folder=mail_folder)

    def _delta_builder(self) -> DeltaRequestBuilder:
        return self._client.me.mail_folders.by_mail_folder_id(self._mail_folder).messages.delta

    async def _get_page(self, cursor: Optional[str], page_size: int):
        builder = self._delta_builder()
        if cursor:
            return await builder.with_url(cursor).get()
        q = DeltaRequestBuilder.DeltaRequestBuilderGetQueryParameters(select=DELTA_SELECT_FIELDS)
        config = DeltaRequestBuilder.DeltaRequestBuilderGetRequestConfiguration(query_parameters=q)
        config.headers.add("Prefer", f"odata.maxpagesize={page_size}")
        return await builder.get(request_configuration=config)

    async def fetch_delta(self, cursor: Optional[str], page_size: int) -> DeltaPage:
        """One delta page. Transient errors are retried with backoff; anything else propagates."""
        attempts = max(1, SYNC_FETCH_MAX_ATTEMPTS)
        for attempt in range(attempts):
            try:
                result = await self._get_page(cursor, page_size)
                break
            except Exception as e:
                if attempt < attempts - 1 and _is_transient_network_error(e):
                    delay = SYNC_FETCH_BASE_DELAY * (2**attempt)
                    logger.debug(
                        "graph_provider.fetch_delta.retry",
                        attempt=attempt + 1,
                        delay=delay,
                        error_type=type(e).__name__,
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(
                    "graph_provider.fetch_delta.error",
                    error=str(e).strip() or repr(e),
                    error_type=type(e).__name__,
                )
                raise

        if result is None:
            return DeltaPage(next_cursor=cursor, has_more=False)
        messages = [_convert_sdk_message(m) for m in (result.value or [])]
        next_link = result.odata_next_link
        delta_link = result.odata_delta_link
        logger.debug(
            "graph_provider.fetch_delta",
            count=len(messages),
            has_more=bool(next_link),
        )
        return DeltaPage(
            messages=messages,
            next_cursor=next_link or delta_link or cursor,
            has_more=bool(next_link),
        )
