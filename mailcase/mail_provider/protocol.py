"""Mail provider protocol (Graph-like delta interface)."""

from typing import Optional, Protocol

from mailcase.mail_provider.graph_models import DeltaPage


class MailProvider(Protocol):
    """Source of mailbox changes since an opaque cursor."""

    async def fetch_delta(self, cursor: Optional[str], page_size: int) -> DeltaPage:
        """One page of messages changed since `cursor` (None = initial sync).

        Raises on provider failure; the caller must not advance its stored cursor then.
        """
        ...
