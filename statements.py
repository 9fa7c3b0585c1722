from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple, Union

from segmenter import BBError, BBSyntaxError, Statement


OPERATIONS = {
    "clear",
    "incr",
    "decr",
    "while",
    "end",
}

_INT_LITERAL = re.compile(r"[+-]?[0-9]+")


class UndefinedOperationError(BBError):
    """Raised when a statement starts with an unknown keyword."""


@dataclass(frozen=True)
class Node:
    statement: Statement

    @property
    def keyword(self) -> str:
        return self.statement.keyword

    @property
    def line_number(self) -> int:
        return self.statement.line_number

    @property
    def source_line(self) -> str:
        return self.statement.source_line


@dataclass(frozen=True)
class Clear(Node):
    variable: str


@dataclass(frozen=True)
class Incr(Node):
    variable: str


@dataclass(frozen=True)
class Decr(Node):
    variable: str


@dataclass(frozen=True)
class While(Node):
    variable: str
    target: Union[int, str]

    @property
    def target_is_literal(self) -> bool:
        return isinstance(self.target, int)


@dataclass(frozen=True)
class End(Node):
    pass


@dataclass(frozen=True)
class InvalidStatement(Node):
    # Raised when execution reaches the statement, not at parse time.
    error: BBError


@dataclass
class Program:
    nodes: Tuple[Node, ...]
    # while index -> index of its closing end
    loop_ends: Dict[int, int] = field(default_factory=dict, repr=False)

    def __len__(self) -> int:
        return len(self.nodes)


class Parser:
    def __init__(self, statements: Iterable[Statement]) -> None:
        self.statements = list(statements)

    def parse(self) -> Program:
        return Program(nodes=tuple(self._parse_statement(s) for s in self.statements))

    def _parse_statement(self, statement: Statement) -> Node:
        words: List[str] = statement.text.split(" ")
        operation = words[0]
        if operation not in OPERATIONS:
            return InvalidStatement(
                statement,
                UndefinedOperationError(
                    f"Undefined operation \"{operation}\" at line {statement.line_number} (\"{statement.source_line}\")",
                    line_number=statement.line_number,
                    source_line=statement.source_line,
                    rule=operation,
                ),
            )
        # end never takes part in argument checks; only its keyword matters
        if operation == "end":
            return End(statement)
        if len(words) < 2:
            return self._invalid(
                statement, f"Expected an argument after \"{operation}\" at line {statement.line_number}"
            )
        if operation == "while":
            return self._parse_while(statement, words)
        if len(words) > 2:
            return self._invalid(
                statement,
                f"Expected one argument after \"{operation}\" at line {statement.line_number}, "
                f"got {len(words) - 1} (\"{statement.source_line}\")",
            )
        if operation == "clear":
            return Clear(statement, words[1])
        if operation == "incr":
            return Incr(statement, words[1])
        return Decr(statement, words[1])

    def _parse_while(self, statement: Statement, words: List[str]) -> Node:
        if len(words) != 5 or words[2] != "not" or words[4] != "do":
            return self._invalid(
                statement,
                f"Illegal while loop syntax at line {statement.line_number} (\"{statement.source_line}\")",
            )
        target: Union[int, str] = words[3]
        if _INT_LITERAL.fullmatch(words[3]):
            target = int(words[3])
        return While(statement, words[1], target)

    def _invalid(self, statement: Statement, message: str) -> InvalidStatement:
        error = BBSyntaxError(
            message,
            line_number=statement.line_number,
            source_line=statement.source_line,
            rule=statement.keyword,
        )
        return InvalidStatement(statement, error)


def parse(statements: Iterable[Statement]) -> Program:
    return Parser(statements).parse()
