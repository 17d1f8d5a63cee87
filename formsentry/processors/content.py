"""
Form Content Analyzer

Inspects the text fields of a submission for spam traits and derives a
non-positive score delta plus reason tags. No decisions are made here.

Also hosts the Latin-script check used by the engine's Latin-only policy.
"""

import logging
import re
import unicodedata
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

import regex


logger = logging.getLogger(__name__)


# =============================================================================
# Field Classification
# =============================================================================

NAME_KEYS = {"name", "full_name", "fullname", "username"}
EMAIL_KEYS = {"email"}
WEBSITE_KEYS = {"website", "url", "site"}
MESSAGE_KEYS = {"message", "msg", "comment", "content", "bio", "body"}


# =============================================================================
# Patterns & Limits
# =============================================================================

# ASCII word boundary: a URL glued to a preceding accented letter still counts
URL_RE = re.compile(r"\b(?:https?://|www\.)\S+", re.IGNORECASE | re.ASCII)
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# First link costs 2, each extra link 1 more, never more than 4 in total
FIRST_LINK_PENALTY = 2
MAX_LINK_PENALTY = 4

KEYWORD_PENALTY = 3

EMOJI_SOFT_LIMIT = 5
EMOJI_HARD_LIMIT = 12
EMOJI_BLOCK = (0x1F300, 0x1FAFF)

REPEATED_PUNCT_CHARS = frozenset("!?*&_-")
REPEATED_PUNCT_RUN = 5

SHORT_MESSAGE_CHARS = 15

# A letter outside Latin, or a mark outside Latin/Inherited
NON_LATIN_RE = regex.compile(
    r"(?=\p{L})\P{Script=Latin}"
    r"|(?=\p{M})[^\p{Script=Latin}\p{Script=Inherited}]"
)


class ContentAnalyzer:
    """
    Spam heuristics over submitted text fields.

    Every check is independent; penalties accumulate and reasons are
    appended in check order.
    """

    def analyze(
        self,
        form: Dict[str, List[str]],
        keywords: Optional[Iterable[str]] = None,
    ) -> Tuple[int, List[str]]:
        """
        Analyze form fields.

        Args:
            form: Form mapping (key -> submitted values)
            keywords: Spam keywords, matched case-insensitively as literals

        Returns:
            (delta, reasons) where delta <= 0
        """
        fields = self._classify(form)
        message = fields["message"]
        name = fields["name"]
        email = fields["email"]
        website = fields["website"]

        delta = 0
        reasons: List[str] = []

        # Links in message
        links = URL_RE.findall(message)
        if links:
            delta -= min(FIRST_LINK_PENALTY + len(links) - 1, MAX_LINK_PENALTY)
            reasons.append(f"links_in_message:{len(links)}")

        # Spam keywords
        keyword_re = self._keyword_pattern(keywords or ())
        if keyword_re is not None and keyword_re.search(message):
            delta -= KEYWORD_PENALTY
            reasons.append("spam_keywords")

        # Emoji overuse
        emoji_count = count_emoji(message)
        if emoji_count >= EMOJI_SOFT_LIMIT:
            delta -= 1
            reasons.append(f"emoji_overuse:{emoji_count}")
        if emoji_count >= EMOJI_HARD_LIMIT:
            delta -= 1

        if has_repeated_punct(message):
            delta -= 1
            reasons.append("repeated_punct")

        if name and URL_RE.search(name):
            delta -= 2
            reasons.append("name_contains_url")

        if website and not URL_RE.search(website):
            delta -= 1
            reasons.append("website_invalid")

        if email and not EMAIL_RE.match(email):
            delta -= 1
            reasons.append("email_invalid")

        # Very short message carrying a link
        if links and len(message) < SHORT_MESSAGE_CHARS:
            delta -= 1
            reasons.append("short_msg_with_link")

        if reasons:
            logger.debug(f"Content heuristics: delta={delta} reasons={reasons}")

        return delta, reasons

    def _classify(self, form: Dict[str, List[str]]) -> Dict[str, str]:
        """Map form keys onto name/email/website/message by case-insensitive synonym."""
        name = email = website = ""
        message_parts: List[str] = []

        for key, values in form.items():
            value = values[0] if values else ""
            key_lower = key.lower()
            if key_lower in NAME_KEYS:
                name = value
            elif key_lower in EMAIL_KEYS:
                email = value
            elif key_lower in WEBSITE_KEYS:
                website = value
            elif key_lower in MESSAGE_KEYS:
                message_parts.append(value)

        return {
            "name": name.strip(),
            "email": email.strip(),
            "website": website.strip(),
            "message": "\n".join(message_parts).strip(),
        }

    def _keyword_pattern(self, keywords: Iterable[str]) -> Optional[Pattern[str]]:
        parts = [re.escape(kw.strip()) for kw in keywords if kw and kw.strip()]
        if not parts:
            return None
        return re.compile("(" + "|".join(parts) + ")", re.IGNORECASE)


# =============================================================================
# Character-Level Helpers
# =============================================================================

def count_emoji(text: str) -> int:
    """Count symbol-category code points plus the main emoji block."""
    low, high = EMOJI_BLOCK
    return sum(
        1 for ch in text
        if unicodedata.category(ch) == "So" or low <= ord(ch) <= high
    )


def has_repeated_punct(text: str) -> bool:
    """True when a char from REPEATED_PUNCT_CHARS appears 5+ times in a row."""
    run = 0
    prev = ""
    for ch in text:
        if ch == prev and ch in REPEATED_PUNCT_CHARS:
            run += 1
            if run >= REPEATED_PUNCT_RUN - 1:
                return True
        else:
            run = 0
        prev = ch
    return False


def is_latin_only(text: str) -> bool:
    """
    False when any letter or combining mark falls outside the Latin script.

    Uses the Unicode Script property, so ordinal indicators (ª º), the
    Kelvin sign and Latin modifier letters count as Latin. Combining marks
    of the Inherited script (decomposed accents) are accepted as well.
    """
    return NON_LATIN_RE.search(text) is None


def form_is_latin_only(form: Dict[str, List[str]], skip_field: str = "") -> bool:
    """Check every submitted value except the decoy field."""
    for key, values in form.items():
        if key == skip_field:
            continue
        if not all(is_latin_only(v) for v in values):
            return False
    return True
