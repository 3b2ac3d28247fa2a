"""concierge.detectors

Candidate Detector Bank: one rule-table detector per route.

Usage:
    from concierge.detectors import build_default_bank

    bank = build_default_bank()
    candidates = bank.detect_all("delete report.pdf")
    applicable = [c for c in candidates if c.applies]
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from concierge.core.logger import get_logger
from concierge.core.normalizer import normalize_text
from concierge.core.routes import Candidate, Route
from concierge.detectors.base import Detector, Rule, rule
from concierge.detectors.connector import ConnectorDetector
from concierge.detectors.document import DocumentDetector
from concierge.detectors.mail import MailDetector
from concierge.detectors.mail_contacts import MailContactsDetector
from concierge.detectors.memory import MemoryDetector
from concierge.detectors.schedule import ScheduleDetector
from concierge.detectors.self_maintenance import SelfMaintenanceDetector
from concierge.detectors.smalltalk import SmallTalkDetector
from concierge.detectors.web import WebDetector
from concierge.detectors.workspace import WorkspaceDetector


class DetectorBank:
    """Runs independent detectors; a failing detector counts as 'does not apply'."""

    def __init__(self, detectors: Iterable[Detector]):
        self._detectors: Dict[Route, Detector] = {}
        for detector in detectors:
            self._detectors[detector.route] = detector

    @property
    def routes(self) -> List[Route]:
        return list(self._detectors)

    def register(self, detector: Detector) -> None:
        self._detectors[detector.route] = detector

    def detect(self, route: Route, raw_text: str, normalized: Optional[str] = None) -> Candidate:
        detector = self._detectors.get(route)
        if detector is None:
            return Candidate(route=route, applies=False)
        if normalized is None:
            normalized = normalize_text(raw_text)
        try:
            return detector.detect(raw_text or "", normalized)
        except Exception as e:
            get_logger().error(f"[DETECT] detector={route.value} error={e}")
            return Candidate(route=route, applies=False)

    def detect_all(self, raw_text: str, normalized: Optional[str] = None) -> List[Candidate]:
        if normalized is None:
            normalized = normalize_text(raw_text)
        candidates = [self.detect(route, raw_text, normalized) for route in self._detectors]
        matched = [f"{c.route.value}:{c.rule}" for c in candidates if c.applies]
        get_logger().debug(f"[DETECT] matched={matched or 'none'}")
        return candidates

    def applicable(self, raw_text: str, normalized: Optional[str] = None) -> List[Candidate]:
        return [c for c in self.detect_all(raw_text, normalized) if c.applies]


def build_default_bank() -> DetectorBank:
    return DetectorBank([
        SmallTalkDetector(),
        SelfMaintenanceDetector(),
        ConnectorDetector(),
        ScheduleDetector(),
        MemoryDetector(),
        MailContactsDetector(),
        MailDetector(),
        WorkspaceDetector(),
        DocumentDetector(),
        WebDetector(),
    ])


__all__ = ["DetectorBank", "Detector", "Rule", "rule", "build_default_bank"]
