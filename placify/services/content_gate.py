"""Content gate — spam and injection screening for public submissions.

Runs before a submission is stored. A rejection becomes a 422 at submit
time; an accepted submission still enters moderation as pending/new, so the
gate never approves anything on its own.

Text stored from the public forms is also passed through sanitize(), which
strips every HTML tag with bleach.
"""

import re
from collections import Counter
from dataclasses import dataclass
from typing import Optional

import bleach

SPECIAL_CHARS_RE = re.compile(r"[!@#$%^&*()_+=\[\]{}|;':\",./<>?\\]")
UPPERCASE_RE = re.compile(r"[A-Z]")
URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)
MARKUP_RE = re.compile(
    r"<\s*/?\s*(script|iframe|object|embed|style|svg|img)\b|javascript\s*:|<[^>]*\bon\w+\s*=",
    re.IGNORECASE,
)

EXPERIENCE_TEXT_FIELDS = (
    "overall_experience",
    "coding_questions",
    "technical_questions",
    "hr_questions",
    "tips_for_candidates",
)
REPEATED_WORD_LIMIT = 5


def sanitize(text):
    """Strip all HTML tags from user input."""
    if text is None:
        return text
    return bleach.clean(str(text), tags=[], strip=True).strip()


@dataclass(frozen=True)
class GateResult:
    accepted: bool
    reason: Optional[str] = None

    @classmethod
    def accept(cls):
        return cls(True)

    @classmethod
    def reject(cls, reason):
        return cls(False, reason)


class ContentGate:
    """Base gate: accepts everything. Subclasses override evaluate()."""

    def evaluate(self, submission):
        return GateResult.accept()


class BasicContentGate(ContentGate):
    """Heuristic screening of contact messages and experience write-ups.

    The submission dict carries a "kind" key ("contact" or "experience")
    alongside its raw, unsanitized fields.
    """

    def __init__(self, contact_special_ratio=0.4, experience_special_ratio=0.3,
                 uppercase_ratio=0.5):
        self.contact_special_ratio = contact_special_ratio
        self.experience_special_ratio = experience_special_ratio
        self.uppercase_ratio = uppercase_ratio

    def evaluate(self, submission):
        kind = submission.get("kind")
        if kind == "contact":
            return self._evaluate_contact(submission)
        if kind == "experience":
            return self._evaluate_experience(submission)
        return GateResult.reject(f"Unknown submission kind '{kind}'.")

    # -- per kind ------------------------------------------------------------

    def _evaluate_contact(self, submission):
        for field in ("name", "subject", "message"):
            if _has_markup(submission.get(field)):
                return GateResult.reject(f"{field} contains markup that is not allowed.")

        message = submission.get("message")
        if not isinstance(message, str) or not message:
            return GateResult.accept()
        if URL_RE.search(message):
            return GateResult.reject("URLs are not allowed in contact messages.")
        return self._check_ratios("Message", message, self.contact_special_ratio)

    def _evaluate_experience(self, submission):
        for field, value in submission.items():
            if field != "kind" and _has_markup(value):
                return GateResult.reject(f"{field} contains markup that is not allowed.")
        rounds = submission.get("rounds")
        if isinstance(rounds, list):
            for item in rounds:
                if isinstance(item, dict) and any(_has_markup(v) for v in item.values()):
                    return GateResult.reject("rounds contains markup that is not allowed.")

        for field in EXPERIENCE_TEXT_FIELDS:
            text = submission.get(field)
            if not isinstance(text, str) or not text:
                continue
            if URL_RE.search(text):
                return GateResult.reject(f"URLs are not allowed in {field}.")
            result = self._check_ratios(field, text, self.experience_special_ratio)
            if not result.accepted:
                return result

        overall = submission.get("overall_experience")
        if isinstance(overall, str) and _max_word_repeats(overall) > REPEATED_WORD_LIMIT:
            return GateResult.reject("overall_experience contains too many repeated words.")
        return GateResult.accept()

    def _check_ratios(self, label, text, special_ratio):
        if len(SPECIAL_CHARS_RE.findall(text)) > len(text) * special_ratio:
            return GateResult.reject(f"{label} contains too many special characters.")
        if len(UPPERCASE_RE.findall(text)) > len(text) * self.uppercase_ratio:
            return GateResult.reject(f"{label} contains too many capital letters.")
        return GateResult.accept()


def _has_markup(value):
    return isinstance(value, str) and bool(MARKUP_RE.search(value))


def _max_word_repeats(text):
    words = Counter(w.lower() for w in text.split() if len(w) > 3)
    return max(words.values(), default=0)
