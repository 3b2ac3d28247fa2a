"""
Tests for text normalization and the per-route candidate detectors.

Run with: python -m pytest tests/test_detectors.py -v
"""

import random
import string

import pytest

from concierge.core.normalizer import (
    extract_emails,
    extract_file_tokens,
    extract_urls,
    normalize_text,
)
from concierge.core.routes import Candidate, Route
from concierge.detectors import DetectorBank, build_default_bank
from concierge.detectors.base import Detector
from concierge.detectors.connector import ConnectorDetector
from concierge.detectors.document import DocumentDetector
from concierge.detectors.mail import MailDetector
from concierge.detectors.mail_contacts import MailContactsDetector
from concierge.detectors.memory import MemoryDetector
from concierge.detectors.schedule import ScheduleDetector
from concierge.detectors.self_maintenance import SelfMaintenanceDetector
from concierge.detectors.smalltalk import SmallTalkDetector
from concierge.detectors.web import WebDetector, sanitize_web_query
from concierge.detectors.workspace import WorkspaceDetector


# ============================================================================
# NORMALIZER
# ============================================================================

class TestNormalizeText:
    """Test normalize_text()."""

    def test_diacritics_case_and_punctuation(self):
        assert normalize_text("¿Borrá el Informe.PDF?") == "borra el informe pdf"

    def test_blank_input(self):
        assert normalize_text("") == ""
        assert normalize_text(None) == ""
        assert normalize_text("  ...  ") == ""

    def test_collapses_whitespace(self):
        assert normalize_text("open   the\tthird\none") == "open the third one"


class TestExtractors:
    """Test file/email/url extraction from raw text."""

    def test_file_tokens(self):
        assert extract_file_tokens("move notes.txt to archive/") == ["notes.txt"]

    def test_file_tokens_with_folders(self):
        assert extract_file_tokens("read docs/plan.md please") == ["docs/plan.md"]

    def test_file_tokens_ignore_urls_and_emails(self):
        text = "send report.pdf to bob@example.com, see https://example.com/a.pdf"
        assert extract_file_tokens(text) == ["report.pdf"]

    def test_file_tokens_dedupe(self):
        assert extract_file_tokens("a.txt and a.txt") == ["a.txt"]

    def test_version_numbers_are_not_files(self):
        assert extract_file_tokens("upgrade to 3.5 now") == []

    def test_emails_lowercased(self):
        assert extract_emails("Mail Bob@Example.com now") == ["bob@example.com"]

    def test_urls_strip_trailing_punctuation(self):
        assert extract_urls("look at https://example.com/x.") == ["https://example.com/x"]


# ============================================================================
# DETECTORS
# ============================================================================

class TestWorkspaceDetector:
    """Test the workspace detector."""

    def test_delete_with_path(self):
        candidate = WorkspaceDetector().detect("delete report.pdf")
        assert candidate.applies
        assert candidate.route == Route.WORKSPACE
        assert candidate.params["action"] == "delete"
        assert candidate.params["paths"] == ["report.pdf"]

    def test_move_extracts_target(self):
        candidate = WorkspaceDetector().detect("move notes.txt to archive/")
        assert candidate.applies
        assert candidate.params["action"] == "move"
        assert candidate.params["paths"] == ["notes.txt"]
        assert candidate.params["target"] == "archive/"

    def test_delete_mail_is_not_workspace(self):
        assert not WorkspaceDetector().detect("delete the mail from bob").applies

    def test_send_email_is_not_workspace(self):
        assert not WorkspaceDetector().detect("send an email to bob").applies

    def test_open_ordinal_marks_list_reference(self):
        candidate = WorkspaceDetector().detect("open the third one")
        assert candidate.applies
        assert candidate.params["list_reference"] is True

    def test_blank_never_applies(self):
        assert not WorkspaceDetector().detect("   ").applies


class TestMailDetector:
    """Test the mail detector."""

    def test_send_email_to_name(self):
        candidate = MailDetector().detect("send an email to bob")
        assert candidate.applies
        assert candidate.params["action"] == "send"
        assert candidate.params["to"] == ["bob"]

    def test_send_by_mail_with_pronoun(self):
        candidate = MailDetector().detect("send it by mail")
        assert candidate.applies
        assert candidate.params["action"] == "send"
        assert candidate.params["refers_to_previous"] is True

    def test_contacts_vetoed(self):
        assert not MailDetector().detect("list my mail contacts").applies


class TestWebDetector:
    """Test the web detector."""

    def test_search_query_sanitized(self):
        candidate = WebDetector().detect("please search the web for cheap flights to rome")
        assert candidate.applies
        assert candidate.params == {"action": "search", "query": "cheap flights to rome"}

    def test_open_result_reference(self):
        candidate = WebDetector().detect("open the third one")
        assert candidate.applies
        assert candidate.params["action"] == "open"
        assert candidate.params["list_reference"] is True

    def test_sanitize_strips_lead_and_tail(self):
        assert sanitize_web_query("look up the weather online") == "weather"


class TestOtherDetectors:
    """Test smaller detectors."""

    def test_greeting(self):
        candidate = SmallTalkDetector().detect("hello there")
        assert candidate.applies
        assert candidate.params["kind"] == "greeting"

    def test_greeting_with_request_is_vetoed(self):
        assert not SmallTalkDetector().detect("hi, delete report.pdf").applies

    def test_reminder(self):
        candidate = ScheduleDetector().detect("remind me tomorrow at 9 to call mom")
        assert candidate.applies
        assert candidate.params["action"] == "create"
        assert candidate.params["task"] == "call mom"
        assert candidate.params["time"] == "09:00"
        assert candidate.params["day"] == "tomorrow"

    def test_connector_restart(self):
        candidate = ConnectorDetector().detect("restart the whatsapp bridge")
        assert candidate.applies
        assert candidate.params == {"action": "restart", "service": "whatsapp"}


# ============================================================================
# BANK
# ============================================================================

class _BrokenDetector(Detector):
    route = Route.WEB

    def detect(self, raw_text, normalized=None):
        raise RuntimeError("boom")


class TestDetectorBank:
    """Test DetectorBank."""

    def test_default_bank_covers_every_route(self):
        bank = build_default_bank()
        assert set(bank.routes) == set(Route) - {Route.NONE}

    def test_applicable_for_delete(self):
        applicable = build_default_bank().applicable("delete report.pdf")
        assert [c.route for c in applicable] == [Route.WORKSPACE]

    def test_failing_detector_counts_as_not_applying(self):
        bank = DetectorBank([_BrokenDetector()])
        candidate = bank.detect(Route.WEB, "search cats")
        assert candidate.applies is False

    def test_unknown_route_does_not_apply(self):
        bank = DetectorBank([])
        assert bank.detect(Route.MAIL, "check my inbox").applies is False


@pytest.mark.parametrize("text", ["", "   ", "?!"])
def test_no_detector_applies_to_empty_text(text):
    assert build_default_bank().applicable(text) == []


# ============================================================================
# TOTALITY
# ============================================================================

ALL_DETECTORS = [
    SmallTalkDetector, SelfMaintenanceDetector, ConnectorDetector, ScheduleDetector, MemoryDetector,
    MailContactsDetector, MailDetector, WorkspaceDetector, DocumentDetector, WebDetector,
]

_FRAGMENTS = [
    "delete", "report.pdf", "~/notes/a.txt", "bob@example.com", "https://example.com/x?q=1", "first", "then",
    "last 2", "3 to 5", "remind me", "at 9", "inbox", "contacts", "restart", "bridge", "it", "that file",
    "ñandú", "été", "中文", "😀", "\u200b", "e\u0301", "\t", "\n", "...", "??", "--", "/", "@", "#", "\"", "'",
]
_ALPHABET = string.ascii_letters + string.digits + string.punctuation + " \t\nñáéü€ßçø中文😀\u0301"


def _random_texts(count=200, seed=20240611):
    rng = random.Random(seed)
    texts = []
    for _ in range(count):
        parts = []
        for _ in range(rng.randint(0, 25)):
            if rng.random() < 0.4:
                parts.append(rng.choice(_FRAGMENTS))
            else:
                parts.append("".join(rng.choice(_ALPHABET) for _ in range(rng.randint(1, 12))))
        texts.append(rng.choice([" ", "", ", "]).join(parts))
    texts.append("delete " * 300)
    texts.append("x" * 2000)
    texts.append(("open the 3rd " + "a.txt, ") * 100)
    return texts


RANDOM_TEXTS = _random_texts()


class TestDetectorTotality:
    """Every detector returns a well-formed Candidate for any input."""

    @pytest.mark.parametrize("detector_cls", ALL_DETECTORS, ids=lambda cls: cls.__name__)
    def test_arbitrary_text(self, detector_cls):
        detector = detector_cls()
        for text in RANDOM_TEXTS:
            candidate = detector.detect(text)
            assert isinstance(candidate, Candidate)
            assert candidate.route is detector.route
            assert isinstance(candidate.applies, bool)
            assert isinstance(candidate.params, dict)
            assert detector.detect(text) == candidate

    def test_default_bank_matches_the_detector_list(self):
        assert set(build_default_bank().routes) == {cls.route for cls in ALL_DETECTORS}
