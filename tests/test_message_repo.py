"""Tests for the message repository: skip-duplicate inserts, classification writes, affinity lookups."""

import sys
import unittest
from datetime import timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from factories import FIRM_A, FIRM_B, T0, make_message

from mailcase.db import reset_db
from mailcase.db.repositories import message_repo
from mailcase.errors import ClassificationLockedError, MessageNotFoundError
from mailcase.models.classification import ClassificationResult
from mailcase.models.message import ACTOR_INGESTION, ACTOR_RECLASSIFIER, ClassificationState

CLASSIFIED_001 = ClassificationResult(
    state=ClassificationState.CLASSIFIED,
    confidence=0.9,
    case_id="case-001",
    client_id="client-acme",
    match_type="CONTACT",
)


class TestInsertSkipDuplicates(unittest.TestCase):
    def setUp(self):
        reset_db("sqlite://")

    def test_redelivered_messages_are_skipped(self):
        first = message_repo.insert_skip_duplicates([make_message("m1"), make_message("m2", minutes=1)])
        self.assertEqual([m.id for m in first], ["m1", "m2"])

        again = message_repo.insert_skip_duplicates(
            [make_message("m2", minutes=1), make_message("m3", minutes=2), make_message("m3", minutes=2)]
        )
        self.assertEqual([m.id for m in again], ["m3"])
        self.assertEqual(len(message_repo.list_for_user("user-1")), 3)

    def test_defaults_to_pending(self):
        message_repo.insert_skip_duplicates([make_message("m1")])
        stored = message_repo.get_message("m1")
        self.assertEqual(stored.classification_state, ClassificationState.PENDING)
        self.assertIsNone(stored.case_id)
        self.assertEqual(stored.received_at, T0)
        self.assertIsNotNone(stored.received_at.tzinfo)

    def test_conversation_listing_is_chronological_and_user_scoped(self):
        message_repo.insert_skip_duplicates(
            [
                make_message("m2", "conv-1", minutes=5),
                make_message("m1", "conv-1", minutes=1),
                make_message("other", "conv-1", minutes=2, user_id="user-2"),
            ]
        )
        self.assertEqual([m.id for m in message_repo.list_by_conversation("conv-1", "user-1")], ["m1", "m2"])


class TestApplyClassification(unittest.TestCase):
    def setUp(self):
        reset_db("sqlite://")
        message_repo.insert_skip_duplicates([make_message("m1"), make_message("m2", minutes=1)])

    def test_apply_and_unchanged_rewrite(self):
        outcome = message_repo.apply_classification("m1", CLASSIFIED_001, ACTOR_INGESTION)
        self.assertTrue(outcome.changed)
        self.assertEqual(outcome.previous_state, ClassificationState.PENDING)
        stored = message_repo.get_message("m1")
        self.assertEqual(stored.case_id, "case-001")
        self.assertEqual(stored.classified_by, ACTOR_INGESTION)
        first_at = stored.classified_at

        again = message_repo.apply_classification(
            "m1", CLASSIFIED_001, ACTOR_RECLASSIFIER, classified_at=T0 + timedelta(days=1)
        )
        self.assertFalse(again.changed)
        stored = message_repo.get_message("m1")
        self.assertEqual(stored.classified_at, first_at)
        self.assertEqual(stored.classified_by, ACTOR_INGESTION)

    def test_human_classification_is_locked(self):
        message_repo.assign_message("m1", "case-002", "client-nova", actor="lawyer-7")
        with self.assertRaises(ClassificationLockedError):
            message_repo.apply_classification("m1", CLASSIFIED_001, ACTOR_RECLASSIFIER)
        forced = message_repo.apply_classification("m1", CLASSIFIED_001, "lawyer-8", force=True)
        self.assertTrue(forced.changed)
        self.assertEqual(message_repo.get_message("m1").case_id, "case-001")

    def test_require_unresolved_leaves_classified_alone(self):
        message_repo.apply_classification("m1", CLASSIFIED_001, ACTOR_INGESTION)
        uncertain = ClassificationResult(state=ClassificationState.UNCERTAIN, confidence=0.1)
        outcome = message_repo.apply_classification("m1", uncertain, ACTOR_RECLASSIFIER, require_unresolved=True)
        self.assertFalse(outcome.changed)
        self.assertEqual(message_repo.get_message("m1").classification_state, ClassificationState.CLASSIFIED)

    def test_missing_message(self):
        with self.assertRaises(MessageNotFoundError):
            message_repo.apply_classification("nope", CLASSIFIED_001, ACTOR_INGESTION)


class TestQueries(unittest.TestCase):
    def setUp(self):
        reset_db("sqlite://")
        message_repo.insert_skip_duplicates(
            [
                make_message("a1", "conv-a", sender="legal@acme.example"),
                make_message("a2", "conv-a", minutes=1, sender="lawyer@firm-a.example"),
                make_message("b1", "conv-b", minutes=2, sender="contracts@nova.example"),
                make_message("x1", "conv-a", minutes=3, firm_id=FIRM_B, user_id="user-b"),
            ]
        )

    def test_find_thread_case_is_firm_scoped(self):
        message_repo.apply_classification("a1", CLASSIFIED_001, ACTOR_INGESTION)
        self.assertEqual(message_repo.find_thread_case("conv-a", FIRM_A), "case-001")
        self.assertIsNone(message_repo.find_thread_case("conv-a", FIRM_B))
        self.assertIsNone(message_repo.find_thread_case(None, FIRM_A))
        self.assertEqual(message_repo.thread_case_map(FIRM_A), {"conv-a": "case-001"})

    def test_list_unresolved_filters(self):
        message_repo.apply_classification("a1", CLASSIFIED_001, ACTOR_INGESTION)
        self.assertEqual([m.id for m in message_repo.list_unresolved(FIRM_A)], ["a2", "b1"])
        self.assertEqual(
            [m.id for m in message_repo.list_unresolved(FIRM_A, address="CONTRACTS@nova.example")], ["b1"]
        )
        self.assertEqual([m.id for m in message_repo.list_unresolved(FIRM_A, conversation_ids=["conv-a"])], ["a2"])
        self.assertEqual(message_repo.list_unresolved(FIRM_A, conversation_ids=[]), [])

    def test_reset_classification(self):
        message_repo.apply_classification("a1", CLASSIFIED_001, ACTOR_INGESTION)
        message_repo.assign_message("b1", "case-002", "client-nova", actor="lawyer-7")
        count = message_repo.reset_classification(FIRM_A, message_ids=["a1"])
        self.assertEqual(count, 1)
        self.assertEqual(message_repo.get_message("a1").classification_state, ClassificationState.PENDING)
        self.assertIsNone(message_repo.get_message("a1").classified_by)
        self.assertEqual(message_repo.get_message("b1").case_id, "case-002")
        self.assertEqual(message_repo.reset_classification(FIRM_A), 3)

    def test_assign_conversation_demotes_other_primary_links(self):
        message_repo.assign_message("a1", "case-001", "client-acme", actor="lawyer-7")
        ids = message_repo.assign_conversation("conv-a", "user-1", "case-002", "client-nova", actor="lawyer-7")
        self.assertEqual(sorted(ids), ["a1", "a2"])
        links = {link.case_id: link.is_primary for link in message_repo.list_case_links("a1")}
        self.assertEqual(links, {"case-001": False, "case-002": True})
        again = message_repo.assign_conversation("conv-a", "user-1", "case-002", "client-nova", actor="lawyer-7")
        self.assertEqual(sorted(again), ["a1", "a2"])
        self.assertEqual(len(message_repo.list_case_links("a1")), 2)
        # Other user's copy of the conversation is untouched
        self.assertIsNone(message_repo.get_message("x1").case_id)

    def test_mark_conversation_read(self):
        self.assertEqual(message_repo.mark_conversation_read("conv-a", "user-1"), 2)
        self.assertFalse(message_repo.get_message("x1").is_read)


if __name__ == "__main__":
    unittest.main()
