from __future__ import annotations
import re
from dataclasses import dataclass
from typing import List, Optional

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class BBError(Exception):
    """Base class for interpreter errors."""

    def __init__(
        self,
        message: str,
        *,
        line_number: Optional[int] = None,
        source_line: Optional[str] = None,
        rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.line_number = line_number
        self.source_line = source_line
        self.rule = rule
        self.step_index: Optional[int] = None


class BBSyntaxError(BBError):
    """Raised when a statement is malformed."""


@dataclass(frozen=True)
class Statement:
    text: str
    source_line: str
    line_number: int

    @property
    def keyword(self) -> str:
        return self.text.split(" ", 1)[0]


class Segmenter:
    def __init__(self, text: str) -> None:
        self.text = text

    def segment(self) -> List[Statement]:
        statements: List[Statement] = []
        statements_append = statements.append
        lines = _LINE_BREAK.split(self.text)
        # A final line break does not start another line
        if lines[-1] == "":
            lines.pop()
        for line_number, raw in enumerate(lines, start=1):
            line = raw.strip()
            if not line.endswith(";"):
                raise BBSyntaxError(
                    f"Expected a \";\" at the end of line {line_number} (\"{line}\")",
                    line_number=line_number,
                    source_line=line,
                    rule="terminator",
                )
            # The last fragment is always the empty string after the final ';'
            fragments = line.split(";")
            for fragment in fragments[:-1]:
                instruction = fragment.strip()
                if not instruction:
                    raise BBSyntaxError(
                        f"Redundant \";\" at line {line_number} (\"{line}\")",
                        line_number=line_number,
                        source_line=line,
                        rule="empty",
                    )
                statements_append(Statement(" ".join(instruction.split()), line, line_number))
        return statements


def segment(text: str) -> List[Statement]:
    return Segmenter(text).segment()
