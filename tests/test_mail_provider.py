"""Tests for Graph message normalization, body text extraction and the mock provider."""

import asyncio
import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from factories import FIRM_A, USER

from mailcase.mail_provider import (
    DeltaPage,
    GraphMessage,
    GraphMockProvider,
    delta_page_to_batch,
    extract_delta_token,
    graph_message_to_message,
)
from mailcase.models.message import ClassificationState
from mailcase.utils.body_text import body_to_text, make_preview

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


class TestBodyText(unittest.TestCase):
    def test_html_to_text(self):
        html = "<html><head><style>p {}</style></head><body><p>Hello&nbsp;there,</p><p>See <b>CASE-1</b>.</p></body></html>"
        text = body_to_text(html, "html")
        self.assertIn("Hello", text)
        self.assertIn("CASE-1", text)
        self.assertLess(text.index("Hello"), text.index("CASE-1"))
        self.assertNotIn("<", text)
        self.assertNotIn("p {}", text)

    def test_plain_text_is_only_normalized(self):
        self.assertEqual(body_to_text("a  b\n\n\n\nc", "text"), "a b\n\nc")
        self.assertEqual(body_to_text("", "html"), "")

    def test_preview_is_single_line_and_bounded(self):
        preview = make_preview("line one\nline two " + "x" * 400)
        self.assertNotIn("\n", preview)
        self.assertEqual(len(preview), 255)


class TestMapping(unittest.TestCase):
    def test_graph_message_to_message(self):
        raw = GraphMessage.model_validate(
            {
                "id": "g1",
                "conversationId": "conv-1",
                "internetMessageId": "<g1@mail.example>",
                "receivedDateTime": "2024-11-04T10:15:00+02:00",
                "subject": "Re: Hearing",
                "body": {"contentType": "html", "content": "<p>Dosar nr. 1234/3/2024</p>"},
                "from": {"emailAddress": {"address": " Legal@Acme.example ", "name": "Acme Legal"}},
                "toRecipients": [{"emailAddress": {"address": "lawyer@firm-a.example"}}],
                "ccRecipients": [{"emailAddress": {"address": ""}}],
                "internetMessageHeaders": [{"name": "In-Reply-To", "value": "<root@mail.example>"}],
                "hasAttachments": True,
                "importance": "High",
            }
        )
        msg = graph_message_to_message(raw, USER, FIRM_A)
        self.assertEqual(msg.received_at, datetime(2024, 11, 4, 8, 15, tzinfo=timezone.utc))
        self.assertEqual(msg.sender.address, "Legal@Acme.example")
        self.assertEqual(msg.sender_address, "legal@acme.example")
        self.assertEqual(msg.cc_recipients, [])
        self.assertEqual(msg.body_content, "Dosar nr. 1234/3/2024")
        self.assertEqual(msg.body_preview, "Dosar nr. 1234/3/2024")
        self.assertEqual(msg.in_reply_to, "root@mail.example")
        self.assertEqual(msg.importance, "high")
        self.assertEqual(msg.classification_state, ClassificationState.PENDING)
        self.assertEqual((msg.user_id, msg.firm_id), (USER, FIRM_A))

    def test_blank_conversation_id_becomes_none(self):
        raw = GraphMessage.model_validate({"id": "g2", "conversationId": "  ", "receivedDateTime": "2024-11-04T08:00:00Z"})
        msg = graph_message_to_message(raw, USER, FIRM_A)
        self.assertIsNone(msg.conversation_id)
        self.assertEqual(msg.thread_key, "g2")

    def test_removed_items_are_filtered(self):
        page = DeltaPage(
            messages=[
                GraphMessage.model_validate({"id": "g1", "receivedDateTime": "2024-11-04T08:00:00Z"}),
                GraphMessage.model_validate({"id": "g2", "@removed": {"reason": "deleted"}}),
            ],
            next_cursor="next",
            has_more=True,
        )
        batch = delta_page_to_batch(page, USER, FIRM_A)
        self.assertEqual([m.id for m in batch.messages], ["g1"])
        self.assertEqual(batch.removed_ids, ["g2"])
        self.assertTrue(batch.has_more)

    def test_extract_delta_token(self):
        link = "https://graph.microsoft.com/v1.0/me/mailFolders/inbox/messages/delta?$deltatoken=abc123"
        self.assertEqual(extract_delta_token(link), "abc123")
        self.assertEqual(extract_delta_token("mock:3"), "")
        self.assertEqual(extract_delta_token(None), "")


class TestGraphMockProvider(unittest.TestCase):
    def test_sample_inbox_pages(self):
        provider = GraphMockProvider(inbox_path=DATA_DIR / "inbox.json")
        self.assertEqual(len(provider.messages), 7)
        first = asyncio.run(provider.fetch_delta(None, 5))
        self.assertEqual(len(first.messages), 5)
        self.assertTrue(first.has_more)
        second = asyncio.run(provider.fetch_delta(first.next_cursor, 5))
        self.assertEqual(len(second.messages), 2)
        self.assertFalse(second.has_more)
        self.assertTrue(second.messages[-1].is_removed)
        empty = asyncio.run(provider.fetch_delta(second.next_cursor, 5))
        self.assertEqual(empty.messages, [])
        self.assertEqual(empty.next_cursor, second.next_cursor)

    def test_invalid_items_are_skipped(self):
        provider = GraphMockProvider(items=[{"subject": "no id"}, {"id": "ok"}])
        self.assertEqual([m.id for m in provider.messages], ["ok"])

    def test_missing_inbox_file(self):
        provider = GraphMockProvider(inbox_path=DATA_DIR / "does-not-exist.json")
        self.assertEqual(provider.messages, [])

    def test_foreign_cursor_is_rejected(self):
        with self.assertRaises(ValueError):
            asyncio.run(GraphMockProvider(items=[]).fetch_delta("https://graph.example/delta", 5))


if __name__ == "__main__":
    unittest.main()
