"""Small-talk detector: greetings, thanks, check-ins, identity questions."""

from __future__ import annotations

import re

from concierge.core.routes import Route
from concierge.detectors.base import Detector, rule

_MAX_CHAT_WORDS = 12


def _short(max_words: int):
    def extract(match, raw_text, normalized):
        if len(normalized.split(" ")) > max_words:
            return None
        return {}
    return extract


class SmallTalkDetector(Detector):
    route = Route.SMALL_TALK
    required_params = ("kind",)
    # Greetings glued to a real request ("hi, delete report.pdf") belong elsewhere
    vetoes = (
        re.compile(r"\b(delete|remove|send|search|schedule|remind|restart|rename|move|copy)\b"),
    )
    rules = (
        rule("greeting", r"^(?:hi|hello|hey|hiya|howdy|yo|good (?:morning|afternoon|evening))\b",
             extract=_short(5), kind="greeting"),
        rule("farewell", r"^(?:bye|goodbye|good night|see you|see ya|talk (?:to you )?later|cya)\b",
             extract=_short(6), kind="farewell"),
        rule("thanks", r"\b(?:thanks|thank you|thx|cheers|much appreciated)\b",
             extract=_short(8), kind="thanks"),
        rule("checkin", r"\b(?:how are you|how s it going|how are things|what s up|how have you been)\b",
             extract=_short(_MAX_CHAT_WORDS), kind="checkin"),
        rule("identity", r"\b(?:who are you|what are you|what can you do|what s your name|what is your name|"
                         r"are you (?:a bot|human|real))\b",
             extract=_short(_MAX_CHAT_WORDS), kind="identity"),
        rule("chat", r"^(?:tell me a joke|tell me something|let s chat|let s talk|i m bored|i am bored|"
                     r"i feel|i m feeling|i am feeling)\b",
             extract=_short(_MAX_CHAT_WORDS), kind="chat"),
    )
