"""Tests for the pure case scorer: signals, decision rule, firm isolation, determinism."""

import sys
import unittest
from datetime import timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

sys.path.insert(0, str(Path(__file__).resolve().parent))

from factories import FIRM_A, FIRM_B, T0, make_case, make_client, make_directory, make_message

from mailcase.classification.references import extract_references, mentions_case_number, mentions_reference
from mailcase.classification.scorer import ClassificationScorer, ScoringConfig
from mailcase.errors import FirmMismatchError
from mailcase.models.message import ClassificationState


def _acme_directory():
    return make_directory(
        cases=[
            make_case(
                "case-001",
                "CASE-2024-001",
                client_id="client-acme",
                participants=("lawyer@firm-a.example", "legal@acme.example"),
                last_activity_at=T0 - timedelta(days=2),
            ),
            make_case(
                "case-002",
                "CASE-2024-014",
                client_id="client-nova",
                participants=("partner@firm-a.example", "contracts@nova.example"),
                references=("CTR-2024-117",),
                last_activity_at=T0 - timedelta(days=10),
            ),
            make_case(
                "case-003",
                "CASE-2024-015",
                client_id="client-nova",
                participants=("partner@firm-a.example", "contracts@nova.example"),
                keywords=("customs",),
                references=("REF-889120",),
                last_activity_at=T0 - timedelta(days=3),
            ),
        ],
        clients=[
            make_client("client-acme", ("legal@acme.example",)),
            make_client("client-nova", ("contracts@nova.example",)),
        ],
    )


class TestScenarios(unittest.TestCase):
    def setUp(self):
        self.scorer = ClassificationScorer(ScoringConfig())
        self.directory = _acme_directory()

    def test_case_number_and_client_contact_classifies(self):
        msg = make_message(
            "m1",
            subject="Documents for CASE-2024-001",
            sender="legal@acme.example",
            to=("office@firm-a.example",),
        )
        result = self.scorer.score(msg, self.directory, now=T0)
        self.assertEqual(result.state, ClassificationState.CLASSIFIED)
        self.assertEqual(result.case_id, "case-001")
        self.assertEqual(result.client_id, "client-acme")
        self.assertGreaterEqual(result.confidence, 0.75)
        self.assertEqual(result.match_type, "REFERENCE")

    def test_unknown_sender_is_uncertain(self):
        msg = make_message(
            "m2",
            subject="Settlement proposal",
            sender="opposing@firm.com",
            to=("office@firm-a.example",),
            body="Our client is open to discussing a settlement.",
        )
        result = self.scorer.score(msg, self.directory, now=T0)
        self.assertEqual(result.state, ClassificationState.UNCERTAIN)
        self.assertIsNone(result.case_id)
        self.assertEqual(result.reason, "no confident match")
        self.assertEqual(result.match_type, "UNKNOWN_CONTACT")

    def test_client_with_two_cases_goes_to_client_inbox(self):
        msg = make_message(
            "m3",
            subject="Question about next steps",
            sender="contracts@nova.example",
            to=("office@firm-a.example",),
        )
        result = self.scorer.score(msg, self.directory, now=T0)
        self.assertEqual(result.state, ClassificationState.CLIENT_INBOX)
        self.assertEqual(result.client_id, "client-nova")
        self.assertIsNone(result.case_id)
        self.assertEqual({s.case_id for s in result.suggested_cases}, {"case-002", "case-003"})

    def test_reference_number_picks_case_within_client(self):
        msg = make_message(
            "m4",
            subject="Customs decision",
            sender="contracts@nova.example",
            to=("partner@firm-a.example",),
            body="Decision attached for file REF-889120.",
        )
        result = self.scorer.score(msg, self.directory, now=T0)
        self.assertEqual(result.state, ClassificationState.CLASSIFIED)
        self.assertEqual(result.case_id, "case-003")

    def test_single_case_contact(self):
        msg = make_message("m5", subject="Hello", sender="legal@acme.example", to=("office@firm-a.example",))
        result = self.scorer.score(msg, self.directory, now=T0)
        self.assertEqual(result.state, ClassificationState.CLASSIFIED)
        self.assertEqual(result.case_id, "case-001")
        self.assertAlmostEqual(result.confidence, 0.9)
        self.assertEqual(result.match_type, "CONTACT")

    def test_between_floor_and_threshold_needs_review(self):
        directory = make_directory(
            cases=[
                make_case("case-x", "X-1", participants=("a@x.example", "b@x.example")),
                make_case("case-y", "Y-1", participants=("a@x.example", "b@x.example")),
            ]
        )
        msg = make_message("m6", sender="a@x.example", to=("b@x.example",))
        result = ClassificationScorer().score(msg, directory, now=T0)
        self.assertEqual(result.state, ClassificationState.UNCERTAIN)
        self.assertEqual(result.reason, "needs review")
        self.assertAlmostEqual(result.confidence, 0.4)
        # Equal scores and no activity dates: case id ascending
        self.assertEqual([s.case_id for s in result.suggested_cases], ["case-x", "case-y"])


class TestThreadAffinity(unittest.TestCase):
    def test_thread_case_wins(self):
        directory = _acme_directory()
        msg = make_message("m2", subject="Re: anything", sender="opposing@firm.com")
        result = ClassificationScorer().score(msg, directory, thread_case_id="case-002", now=T0)
        self.assertEqual(result.state, ClassificationState.CLASSIFIED)
        self.assertEqual(result.case_id, "case-002")
        self.assertEqual(result.confidence, 1.0)
        self.assertEqual(result.match_type, "THREAD")

    def test_closed_case_of_same_firm_still_counts(self):
        directory = make_directory(cases=[], closed_case_ids=("case-old",))
        msg = make_message("m2", sender="opposing@firm.com")
        result = ClassificationScorer().score(msg, directory, thread_case_id="case-old", now=T0)
        self.assertEqual(result.case_id, "case-old")

    def test_closed_case_keeps_its_client(self):
        directory = make_directory(
            cases=[],
            clients=[make_client("client-acme", ("legal@acme.example",))],
            closed_case_clients={"case-old": "client-acme"},
        )
        msg = make_message("m2", sender="opposing@firm.com")
        result = ClassificationScorer().score(msg, directory, thread_case_id="case-old", now=T0)
        self.assertEqual(result.case_id, "case-old")
        self.assertEqual(result.client_id, "client-acme")

    def test_foreign_case_is_ignored(self):
        directory = _acme_directory()
        msg = make_message("m2", sender="opposing@firm.com")
        result = ClassificationScorer().score(msg, directory, thread_case_id="case-of-other-firm", now=T0)
        self.assertNotEqual(result.case_id, "case-of-other-firm")
        self.assertEqual(result.state, ClassificationState.UNCERTAIN)


class TestFirmIsolation(unittest.TestCase):
    def test_other_firm_candidates_are_excluded(self):
        directory = make_directory(
            cases=[
                make_case(
                    "case-b",
                    "CASE-2024-001",
                    firm_id=FIRM_B,
                    participants=("legal@acme.example",),
                ),
            ],
            clients=[make_client("client-b", ("legal@acme.example",), firm_id=FIRM_B)],
        )
        msg = make_message("m1", subject="CASE-2024-001", sender="legal@acme.example")
        result = ClassificationScorer().score(msg, directory, now=T0)
        self.assertEqual(result.state, ClassificationState.UNCERTAIN)
        self.assertIsNone(result.case_id)
        self.assertIsNone(result.client_id)
        self.assertEqual(result.suggested_cases, [])

    def test_case_linked_to_foreign_client_is_excluded(self):
        directory = make_directory(
            cases=[
                make_case(
                    "case-a9",
                    "CASE-A-9",
                    client_id="client-orion",
                    participants=("lawyer@firm-a.example", "office@orion.example"),
                ),
            ],
            clients=[make_client("client-acme", ("legal@acme.example",))],
        )
        msg = make_message("m9", subject="CASE-A-9 update", sender="office@orion.example")
        result = ClassificationScorer().score(msg, directory, now=T0)
        self.assertEqual(result.state, ClassificationState.UNCERTAIN)
        self.assertIsNone(result.case_id)
        self.assertIsNone(result.client_id)
        self.assertEqual(result.suggested_cases, [])

    def test_thread_to_case_with_foreign_client_drops_the_client(self):
        directory = make_directory(
            cases=[make_case("case-a9", "CASE-A-9", client_id="client-orion")],
            clients=[make_client("client-acme", ("legal@acme.example",))],
        )
        msg = make_message("m9", sender="office@orion.example")
        result = ClassificationScorer().score(msg, directory, thread_case_id="case-a9", now=T0)
        self.assertEqual(result.case_id, "case-a9")
        self.assertIsNone(result.client_id)

    def test_directory_of_other_firm_is_refused(self):
        directory = make_directory(cases=[], firm_id=FIRM_B)
        with self.assertRaises(FirmMismatchError):
            ClassificationScorer().score(make_message("m1", firm_id=FIRM_A), directory, now=T0)


class TestDeterminism(unittest.TestCase):
    def test_same_input_same_output(self):
        directory = _acme_directory()
        messages = [
            make_message("m1", subject="CASE-2024-001", sender="legal@acme.example"),
            make_message("m2", sender="contracts@nova.example"),
            make_message("m3", sender="nobody@example.com", body="CTR-2024-117"),
        ]
        for msg in messages:
            first = ClassificationScorer().score(msg, directory, now=T0)
            second = ClassificationScorer().score(msg, directory, now=T0)
            self.assertEqual(first, second)

    def test_snapshot_time_is_the_default_clock(self):
        directory = _acme_directory().model_copy(update={"as_of": T0})
        msg = make_message("m1", subject="CASE-2024-001", sender="legal@acme.example")
        first = ClassificationScorer().score(msg, directory)
        second = ClassificationScorer().score(msg, directory)
        self.assertEqual(first, second)
        self.assertEqual(first, ClassificationScorer().score(msg, directory, now=T0))
        self.assertIn("RECENT_ACTIVITY", {s.type for s in first.suggested_cases[0].signals})

    def test_no_clock_means_no_recency_signal(self):
        msg = make_message("m1", subject="CASE-2024-001", sender="legal@acme.example")
        result = ClassificationScorer().score(msg, _acme_directory())
        self.assertEqual(result.case_id, "case-001")
        signals = {s.type for item in result.suggested_cases for s in item.signals}
        self.assertNotIn("RECENT_ACTIVITY", signals)

    def test_recency_does_not_change_the_decision(self):
        directory = _acme_directory()
        msg = make_message("m1", subject="CASE-2024-001", sender="legal@acme.example")
        recent = ClassificationScorer().score(msg, directory, now=T0)
        later = ClassificationScorer().score(msg, directory, now=T0 + timedelta(days=30))
        self.assertEqual(
            (recent.state, recent.case_id, recent.confidence),
            (later.state, later.case_id, later.confidence),
        )


class TestReferences(unittest.TestCase):
    def test_case_number_is_an_exact_token(self):
        self.assertTrue(mentions_case_number("Re: case-2024-001 hearing", "CASE-2024-001"))
        self.assertFalse(mentions_case_number("CASE-2024-0011", "CASE-2024-001"))
        self.assertFalse(mentions_case_number("CASE-2024-001-B", "CASE-2024-001"))
        self.assertFalse(mentions_case_number("anything", ""))

    def test_extract_references(self):
        found = extract_references("Dosar nr. 1234/3/2024, see also ctr-2024-117 and REF-889120.")
        self.assertIn("1234/3/2024", found)
        self.assertIn("ctr-2024-117", found)
        self.assertIn("ref-889120", found)

    def test_mentions_reference(self):
        self.assertTrue(mentions_reference("Termen in dosarul 1234/3/2024", "1234/3/2024"))
        self.assertFalse(mentions_reference("Termen in dosarul 1234/3/2025", "1234/3/2024"))


def test_floor_above_threshold_rejected():
    with pytest.raises(ValidationError):
        ScoringConfig(classify_threshold=0.5, floor_threshold=0.6)


def test_custom_threshold_changes_decision():
    directory = make_directory(cases=[make_case("case-k", "K-1", keywords=("lease",))])
    msg = make_message("m1", subject="Lease renewal", sender="x@example.com")
    strict = ClassificationScorer().score(msg, directory, now=T0)
    lenient = ClassificationScorer(ScoringConfig(classify_threshold=0.2, floor_threshold=0.1)).score(
        msg, directory, now=T0
    )
    assert strict.state == ClassificationState.UNCERTAIN
    assert lenient.state == ClassificationState.CLASSIFIED
    assert lenient.case_id == "case-k"
    assert lenient.match_type == "KEYWORD"


if __name__ == "__main__":
    unittest.main()
