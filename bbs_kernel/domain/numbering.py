"""
Report number formats.

A format is a pattern such as ``YYMMDDXX``: ``YYYY``/``YY``/``MM``/``DD``
render the date, one run of ``X`` renders the per-period sequence padded to
at least the run's width, anything else is literal.  The rendered pattern
without the sequence is the *period*; each (company, prefix, period) has its
own counter.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

_SEQUENCE_RUN = re.compile(r"X+")
_DATE_TOKENS = (("YYYY", "%Y"), ("YY", "%y"), ("MM", "%m"), ("DD", "%d"))


@dataclass(frozen=True)
class ReportNumberFormat:
    prefix: str = "BBS"
    pattern: str = "YYMMDDXX"

    def __post_init__(self) -> None:
        problem = format_problem(self.prefix, self.pattern)
        if problem:
            raise ValueError(problem)

    @property
    def sequence_width(self) -> int:
        return len(_SEQUENCE_RUN.search(self.pattern).group(0))

    def period(self, day: date) -> str:
        """Render the date part (the counter key) for ``day``."""
        text = _SEQUENCE_RUN.sub("", self.pattern)
        for token, directive in _DATE_TOKENS:
            text = text.replace(token, day.strftime(directive))
        return text

    def render(self, day: date, sequence: int) -> str:
        if sequence < 1:
            raise ValueError(f"sequence must be positive, got {sequence}")
        run = _SEQUENCE_RUN.search(self.pattern)
        head = self.pattern[: run.start()]
        tail = self.pattern[run.end():]
        for token, directive in _DATE_TOKENS:
            head = head.replace(token, day.strftime(directive))
            tail = tail.replace(token, day.strftime(directive))
        return f"{self.prefix}{head}{sequence:0{self.sequence_width}d}{tail}"


def format_problem(prefix: str, pattern: str) -> str | None:
    """Return a description of what is wrong with the format, or None."""
    if not prefix or not prefix.isalnum():
        return f"prefix must be non-empty alphanumeric, got {prefix!r}"
    runs = _SEQUENCE_RUN.findall(pattern or "")
    if len(runs) != 1:
        return f"pattern must contain exactly one run of X, got {pattern!r}"
    return None
