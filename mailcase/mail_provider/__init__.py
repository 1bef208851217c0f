"""Mail provider: Graph-like delta interface, mock implementation and normalization."""

from mailcase.mail_provider.graph_models import (
    DeltaPage,
    EmailAddress,
    GraphMessage,
    InternetMessageHeader,
    ItemBody,
    Recipient,
)
from mailcase.mail_provider.protocol import MailProvider
from mailcase.mail_provider.graph_mock import GraphMockProvider
from mailcase.mail_provider.mapping import (
    delta_page_to_batch,
    extract_delta_token,
    graph_message_to_message,
)

__all__ = [
    "DeltaPage",
    "EmailAddress",
    "GraphMessage",
    "InternetMessageHeader",
    "ItemBody",
    "Recipient",
    "MailProvider",
    "GraphMockProvider",
    "delta_page_to_batch",
    "extract_delta_token",
    "graph_message_to_message",
]
