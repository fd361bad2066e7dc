"""Repair escape sequences that the server split across two deltas.

Some models stream a newline as the two characters ``\\`` and ``n`` and the
provider occasionally cuts the delta between them. A fragment ending in a
lone backslash is held back until the next fragment arrives, then the joined
text has every literal ``\\n`` turned into a real newline.
"""

from typing import List

ESCAPE_LEAD = "\\"
LITERAL_NEWLINE = "\\n"


def normalize(text: str) -> str:
    return text.replace(LITERAL_NEWLINE, "\n")


class TokenReassembler:
    """Per-request buffer of fragments waiting for their continuation."""

    def __init__(self):
        self._pending: List[str] = []

    @property
    def pending(self) -> bool:
        return bool(self._pending)

    def process(self, fragment: str) -> str:
        """Return the text that can be rendered now (may be empty)."""
        if self._ends_with_lead(fragment):
            self._pending.append(fragment)
            return ""
        if self._pending:
            joined = "".join(self._pending) + fragment
            self._pending.clear()
            return normalize(joined)
        return fragment

    def flush(self) -> str:
        """Release held fragments unchanged at end of stream."""
        joined = "".join(self._pending)
        self._pending.clear()
        return joined

    @staticmethod
    def _ends_with_lead(fragment: str) -> bool:
        # An escaped backslash ("\\\\") is complete; only an odd run is a lead byte.
        stripped = fragment.rstrip(ESCAPE_LEAD)
        run = len(fragment) - len(stripped)
        return run % 2 == 1
