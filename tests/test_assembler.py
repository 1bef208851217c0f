"""Tests for thread assembly: grouping, subject normalization, participants, dominant case, headers."""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from factories import make_message

from mailcase.threads.assembler import (
    NO_SUBJECT,
    determine_case_id,
    extract_participants,
    group_into_threads,
    link_by_headers,
    normalize_subject,
    parse_message_headers,
    unthreaded_ancestors,
)


class TestNormalizeSubject(unittest.TestCase):
    def test_strips_chained_prefixes(self):
        self.assertEqual(normalize_subject("Re: Contract Review"), "Contract Review")
        self.assertEqual(normalize_subject("RE: Fwd: re[2]: Contract Review"), "Contract Review")
        self.assertEqual(normalize_subject("FW: Fwd: Invoice"), "Invoice")
        self.assertEqual(normalize_subject("  Re :  Hearing date"), "Hearing date")

    def test_keeps_inner_markers(self):
        self.assertEqual(normalize_subject("Answer re: the lease"), "Answer re: the lease")
        self.assertEqual(normalize_subject("Reply needed"), "Reply needed")

    def test_empty_subject(self):
        self.assertEqual(normalize_subject(""), NO_SUBJECT)
        self.assertEqual(normalize_subject(None), NO_SUBJECT)
        self.assertEqual(normalize_subject("Re: "), NO_SUBJECT)

    def test_idempotent(self):
        for s in ["Re: Re: X", "Fwd: RE[3]: Y", "", "Plain", "fw:fw:fw: Z"]:
            once = normalize_subject(s)
            self.assertEqual(normalize_subject(once), once)


class TestGroupIntoThreads(unittest.TestCase):
    def test_contract_review_thread(self):
        messages = [
            make_message("m1", "conv-cr", subject="Contract Review", minutes=0),
            make_message("m3", "conv-cr", subject="RE: Contract Review", minutes=2),
            make_message("m2", "conv-cr", subject="Re: Contract Review", minutes=1),
        ]
        threads = group_into_threads(messages)
        self.assertEqual(len(threads), 1)
        thread = threads[0]
        self.assertEqual(thread.subject, "Contract Review")
        self.assertEqual(thread.message_count, 3)
        self.assertEqual([m.id for m in thread.messages], ["m1", "m2", "m3"])
        self.assertEqual(thread.first_message_at, messages[0].received_at)
        self.assertEqual(thread.last_message_at, messages[1].received_at)

    def test_every_message_in_exactly_one_thread(self):
        messages = [
            make_message("a1", "conv-a", minutes=0),
            make_message("b1", "conv-b", minutes=1),
            make_message("a2", "conv-a", minutes=2),
            make_message("lone", None, minutes=3),
            make_message("b2", "conv-b", minutes=4),
        ]
        threads = group_into_threads(messages)
        seen = [m.id for t in threads for m in t.messages]
        self.assertEqual(sorted(seen), sorted(m.id for m in messages))
        self.assertEqual(len(seen), len(set(seen)))
        keys = {t.conversation_id for t in threads}
        self.assertEqual(keys, {"conv-a", "conv-b", "lone"})

    def test_threads_sorted_by_last_activity(self):
        messages = [
            make_message("a1", "conv-a", minutes=10),
            make_message("b1", "conv-b", minutes=5),
            make_message("c1", "conv-c", minutes=20),
        ]
        self.assertEqual([t.conversation_id for t in group_into_threads(messages)], ["conv-c", "conv-a", "conv-b"])

    def test_unread_and_attachment_flags(self):
        messages = [
            make_message("a1", "conv-a", is_read=True),
            make_message("a2", "conv-a", minutes=1, is_read=False, has_attachments=True),
            make_message("b1", "conv-b", minutes=2, is_read=True),
        ]
        by_id = {t.conversation_id: t for t in group_into_threads(messages)}
        self.assertTrue(by_id["conv-a"].has_unread)
        self.assertTrue(by_id["conv-a"].has_attachments)
        self.assertFalse(by_id["conv-b"].has_unread)
        self.assertFalse(by_id["conv-b"].has_attachments)


class TestParticipants(unittest.TestCase):
    def test_case_insensitive_union_with_roles(self):
        messages = [
            make_message("m1", sender="Ana@Acme.example", to=("lawyer@firm-a.example",), cc=("boss@acme.example",)),
            make_message("m2", minutes=1, sender="lawyer@firm-a.example", to=("ana@acme.example",)),
        ]
        participants = {p.email.lower(): p for p in extract_participants(messages)}
        self.assertEqual(set(participants), {"ana@acme.example", "lawyer@firm-a.example", "boss@acme.example"})
        self.assertEqual(participants["ana@acme.example"].message_count, 1)
        self.assertEqual(set(participants["ana@acme.example"].roles), {"sender", "recipient"})
        self.assertEqual(participants["boss@acme.example"].roles, ["cc"])
        self.assertEqual(participants["boss@acme.example"].message_count, 0)


class TestDetermineCaseId(unittest.TestCase):
    def test_most_frequent(self):
        messages = [
            make_message("m1", case_id="case-a"),
            make_message("m2", minutes=1, case_id="case-b"),
            make_message("m3", minutes=2, case_id="case-a"),
        ]
        self.assertEqual(determine_case_id(messages), "case-a")

    def test_tie_goes_to_most_recent(self):
        messages = [
            make_message("m1", case_id="case-z"),
            make_message("m2", minutes=1, case_id="case-a"),
        ]
        self.assertEqual(determine_case_id(messages), "case-a")
        self.assertEqual(determine_case_id(list(reversed(messages))), "case-z")

    def test_none_when_unclassified(self):
        self.assertIsNone(determine_case_id([make_message("m1"), make_message("m2", minutes=1)]))


class TestHeaders(unittest.TestCase):
    def test_graph_header_list(self):
        headers = [
            {"name": "In-Reply-To", "value": "<abc@mail.example>"},
            {"name": "References", "value": "<root@mail.example> <abc@mail.example>"},
            {"name": "X-Other", "value": "ignored"},
        ]
        parsed = parse_message_headers(headers)
        self.assertEqual(parsed.in_reply_to, "abc@mail.example")
        self.assertEqual(parsed.references, ["root@mail.example", "abc@mail.example"])

    def test_mapping_and_missing(self):
        parsed = parse_message_headers({"in-reply-to": "<x@y>"})
        self.assertEqual(parsed.in_reply_to, "x@y")
        self.assertEqual(parsed.references, [])
        empty = parse_message_headers(None)
        self.assertIsNone(empty.in_reply_to)
        self.assertEqual(empty.references, [])

    def test_link_by_headers_adopts_parent_thread(self):
        parent = make_message("p1", "conv-p", internet_message_id="<root@mail.example>")
        orphan = make_message("o1", None, minutes=1, in_reply_to="root@mail.example")
        unrelated = make_message("u1", None, minutes=2, in_reply_to="missing@mail.example")
        linked = {m.id: m for m in link_by_headers([orphan, unrelated, parent])}
        self.assertEqual(linked["o1"].conversation_id, "conv-p")
        self.assertIsNone(linked["u1"].conversation_id)
        self.assertEqual(linked["p1"].conversation_id, "conv-p")

    def test_link_by_headers_uses_known_parents(self):
        reply = make_message("r1", None, references=["<older@mail.example>", "<stored@mail.example>"])
        threaded = make_message("r2", "conv-own", in_reply_to="stored@mail.example")
        self.assertEqual(unthreaded_ancestors([reply, threaded]), {"older@mail.example", "stored@mail.example"})
        linked = {m.id: m for m in link_by_headers([reply, threaded], {"stored@mail.example": "conv-stored"})}
        self.assertEqual(linked["r1"].conversation_id, "conv-stored")
        self.assertEqual(linked["r2"].conversation_id, "conv-own")


if __name__ == "__main__":
    unittest.main()
