"""Directive tags — control markers the model embeds in its reply.

The model may put any of these anywhere in its text:
  [openLeadForm]  — ask the user to share a contact
  [voice]         — answer with a voice note instead of text
  [quiz]          — recognized, no handling yet
  [showOptions]   — recognized, no handling yet

Tags are matched case-insensitively and stripped before the reply text
is shown to the user or stored in history.
"""

import re
from dataclasses import dataclass
from enum import Enum


class Directive(str, Enum):
    OPEN_LEAD_FORM = "openLeadForm"
    VOICE = "voice"
    QUIZ = "quiz"
    SHOW_OPTIONS = "showOptions"

    @property
    def tag(self) -> str:
        return f"[{self.value}]"

    @property
    def pattern(self) -> re.Pattern:
        # Spaces/tabs around the tag are captured so that removing it
        # does not leave a double space behind.
        return re.compile(r"([ \t]*)" + re.escape(self.tag) + r"([ \t]*)", re.IGNORECASE)


@dataclass(frozen=True)
class ParsedReply:
    plain_text: str
    directives: frozenset = frozenset()

    def has(self, directive: Directive) -> bool:
        return directive in self.directives


def strip_tag(text: str, directive: Directive) -> str:
    """Remove every occurrence of one directive tag (no trimming).

    A tag between two words collapses to a single space: "Hi [voice] there"
    becomes "Hi there".
    """
    def _replace(m: re.Match) -> str:
        before, after = m.group(1), m.group(2)
        if before and after:
            return " "
        return before or after

    return directive.pattern.sub(_replace, text)


def parse_directives(raw: str) -> ParsedReply:
    """Split a model reply into plain text and the set of directives found.

    Args:
        raw: Reply text as returned by the completion service

    Returns:
        ParsedReply with all tags removed and surrounding whitespace trimmed
    """
    if not raw:
        return ParsedReply(plain_text="")

    found = set()
    text = raw
    for directive in Directive:
        if directive.pattern.search(text):
            found.add(directive)
            text = strip_tag(text, directive)

    return ParsedReply(plain_text=text.strip(), directives=frozenset(found))
