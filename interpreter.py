from __future__ import annotations
import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from segmenter import BBError, BBSyntaxError, Segmenter
from statements import (
    Clear,
    Decr,
    End,
    Incr,
    InvalidStatement,
    Node,
    Parser,
    Program,
    While,
)


TOP_LEVEL = "<top-level>"


class BBRuntimeError(BBError):
    """Raised for runtime faults."""


class UndefinedVariableError(BBRuntimeError):
    """Raised when a variable is read before it was cleared."""


class IllegalOperationError(BBRuntimeError):
    """Raised when an operation would make a variable negative."""


class RedundantEndError(BBSyntaxError):
    """Raised for an end with no open loop."""


@dataclass
class VariableStore:
    values: Dict[str, int] = field(default_factory=dict)

    def clear(self, name: str) -> None:
        self.values[name] = 0

    def get(self, name: str, node: Optional[Node] = None) -> int:
        try:
            return self.values[name]
        except KeyError:
            raise _undefined(name, node) from None

    def increment(self, name: str, node: Optional[Node] = None) -> int:
        value = self.get(name, node) + 1
        self.values[name] = value
        return value

    def decrement(self, name: str, node: Optional[Node] = None) -> int:
        value = self.get(name, node)
        if value == 0:
            raise _negative(name, node)
        self.values[name] = value - 1
        return value - 1

    def items(self) -> List[Tuple[str, int]]:
        return list(self.values.items())

    def snapshot(self) -> Dict[str, int]:
        return dict(self.values)

    def __getitem__(self, name: str) -> int:
        return self.get(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)


def _undefined(name: str, node: Optional[Node]) -> UndefinedVariableError:
    if node is None:
        return UndefinedVariableError(f"Access to undefined variable \"{name}\"", rule="IDENT")
    return UndefinedVariableError(
        f"Access to undefined variable \"{name}\" at line {node.line_number} (\"{node.source_line}\")",
        line_number=node.line_number,
        source_line=node.source_line,
        rule=node.keyword,
    )


def _negative(name: str, node: Optional[Node]) -> IllegalOperationError:
    message = f"Illegal operation \"decr {name};\" making \"{name}\" negative"
    if node is None:
        return IllegalOperationError(message, rule="decr")
    return IllegalOperationError(
        f"{message} at line {node.line_number} (\"{node.source_line}\")",
        line_number=node.line_number,
        source_line=node.source_line,
        rule="decr",
    )


@dataclass(frozen=True)
class SourceLocation:
    file: str
    line: int
    statement: str


@dataclass
class Frame:
    name: str
    frame_id: str
    call_location: Optional[SourceLocation]
    loop: Optional[While] = None
    reach: Optional[int] = None


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    frame_id: Optional[str]
    source_location: Optional[SourceLocation]
    statement: Optional[str]
    env_snapshot: Optional[Dict[str, int]]
    rule: str


class StateLogger:
    def __init__(self, verbose: bool) -> None:
        self.verbose = verbose
        # Full history is only kept in verbose mode; loops can run for millions of steps.
        self.entries: List[StateEntry] = []
        self.last_entry: Optional[StateEntry] = None
        self.next_state_index = 0
        self.frame_last_entry: Dict[str, StateEntry] = {}

    def record(
        self,
        *,
        frame: Optional[Frame],
        location: Optional[SourceLocation],
        statement: Optional[str],
        rule: str,
        env_snapshot: Optional[Dict[str, int]] = None,
    ) -> StateEntry:
        step_index = self.next_state_index
        entry = StateEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            frame_id=frame.frame_id if frame else None,
            source_location=location,
            statement=statement,
            env_snapshot=env_snapshot,
            rule=rule,
        )
        if self.verbose:
            self.entries.append(entry)
        if frame:
            self.frame_last_entry[frame.frame_id] = entry
        self.last_entry = entry
        self.next_state_index += 1
        return entry

    @property
    def step_count(self) -> int:
        return self.next_state_index

    def last_entry_for_frame(self, frame_id: str) -> Optional[StateEntry]:
        return self.frame_last_entry.get(frame_id)


class Interpreter:
    def __init__(self, *, source: str, filename: str = "<string>", verbose: bool = False) -> None:
        self.source = source
        self.filename = filename if filename == "<string>" else os.path.abspath(filename)
        self.verbose = verbose
        self.logger = StateLogger(verbose=verbose)
        self.call_stack: List[Frame] = []
        self.frame_counter = 0

    def parse(self) -> Program:
        statements = Segmenter(self.source).segment()
        return Parser(statements).parse()

    def run(self) -> VariableStore:
        program = self.parse()
        store = VariableStore()
        self.execute(program, store)
        return store

    def execute(self, program: Program, store: VariableStore, start: int = 0, stop: Optional[int] = None) -> None:
        stop = len(program.nodes) if stop is None else stop
        self.call_stack.append(self._new_frame(TOP_LEVEL, None))
        try:
            self._execute_block(program, start, stop, store)
        except BBError as error:
            if self.logger.last_entry is not None:
                error.step_index = self.logger.last_entry.step_index
            raise
        except Exception as exc:
            # Surface Python-level failures (e.g. RecursionError) as interpreter errors.
            last = self.logger.last_entry
            wrapped = BBRuntimeError(
                f"Internal interpreter error: {exc!r}",
                line_number=last.source_location.line if last and last.source_location else None,
                source_line=last.statement if last else None,
                rule="internal",
            )
            if last is not None:
                wrapped.step_index = last.step_index
            raise wrapped from exc
        else:
            self.call_stack.pop()

    def _execute_block(self, program: Program, start: int, stop: int, store: VariableStore) -> None:
        nodes = program.nodes
        execute_stmt = self._execute_statement
        i = start
        while i < stop:
            node = nodes[i]
            if isinstance(node, While):
                i = self._execute_while(program, i, stop, store)
                continue
            execute_stmt(node, store)
            i += 1

    def _execute_statement(self, node: Node, store: VariableStore) -> None:
        self._log_step(node, store)
        if isinstance(node, Clear):
            store.clear(node.variable)
            return
        if isinstance(node, Incr):
            store.increment(node.variable, node)
            return
        if isinstance(node, Decr):
            store.decrement(node.variable, node)
            return
        if isinstance(node, InvalidStatement):
            raise node.error
        if isinstance(node, End):
            raise RedundantEndError(
                f"Redundant loop end at line {node.line_number} (\"{node.source_line}\")",
                line_number=node.line_number,
                source_line=node.source_line,
                rule="end",
            )
        raise BBRuntimeError(f"Unsupported statement \"{node.statement.text}\"", line_number=node.line_number)

    def _execute_while(self, program: Program, index: int, stop: int, store: VariableStore) -> int:
        node = program.nodes[index]
        assert isinstance(node, While)
        self._log_step(node, store)
        store.get(node.variable, node)
        reach = node.target if node.target_is_literal else store.get(node.target, node)
        end = self._find_loop_end(program, index, stop)

        # Loops can run forever; the language has no upper bound on iterations.
        if store.get(node.variable) != reach:
            frame = self._new_frame(node.statement.text, self._location(node))
            frame.loop = node
            frame.reach = reach
            self.call_stack.append(frame)
            while store.get(node.variable) != reach:
                self._execute_block(program, index + 1, end, store)
                if not node.target_is_literal:
                    reach = frame.reach = store.get(node.target, node)
            self.call_stack.pop()
            # Finished frames are never shown in a traceback.
            self.logger.frame_last_entry.pop(frame.frame_id, None)
        return end + 1

    def _find_loop_end(self, program: Program, index: int, stop: int) -> int:
        cached = program.loop_ends.get(index)
        if cached is not None and cached < stop:
            return cached
        nodes = program.nodes
        depth = 0
        for j in range(index + 1, stop):
            keyword = nodes[j].keyword
            if keyword == "while":
                depth += 1
            elif keyword == "end":
                if depth == 0:
                    program.loop_ends[index] = j
                    return j
                depth -= 1
        node = nodes[index]
        raise BBSyntaxError(
            f"Missing while loop end after line {node.line_number} (\"{node.source_line}\")",
            line_number=node.line_number,
            source_line=node.source_line,
            rule="while",
        )

    def _location(self, node: Node) -> SourceLocation:
        return SourceLocation(file=self.filename, line=node.line_number, statement=node.source_line)

    def _new_frame(self, name: str, call_location: Optional[SourceLocation]) -> Frame:
        frame_id = f"f_{self.frame_counter:04d}"
        self.frame_counter += 1
        return Frame(name=name, frame_id=frame_id, call_location=call_location)

    def _log_step(self, node: Node, store: VariableStore) -> None:
        frame = self.call_stack[-1] if self.call_stack else None
        self.logger.record(
            frame=frame,
            location=self._location(node),
            statement=node.source_line,
            rule=node.keyword,
            env_snapshot=store.snapshot() if self.verbose else None,
        )


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def frame_records(self) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        for frame in self.interpreter.call_stack:
            entry = self.interpreter.logger.last_entry_for_frame(frame.frame_id)
            location = entry.source_location if entry else frame.call_location
            record: Dict[str, Any] = {"name": frame.name}
            if location:
                record.update(file=location.file, line=location.line, statement=location.statement)
            if frame.loop is not None:
                record["loop"] = {
                    "variable": frame.loop.variable,
                    "target": frame.loop.target,
                    "target_kind": "literal" if frame.loop.target_is_literal else "variable",
                    "reach": frame.reach,
                }
            if entry:
                record.update(step_index=entry.step_index, state_id=entry.state_id, rule=entry.rule)
                if entry.env_snapshot is not None:
                    record["env_snapshot"] = entry.env_snapshot
            records.append(record)
        return records

    def format_text(self, error: BBError, verbose: bool) -> str:
        records = self.frame_records()
        lines: List[str] = ["Traceback (most recent call last):"] if records else []
        for record in records:
            if "line" in record:
                lines.append(f"  File \"{record['file']}\", line {record['line']}, in {record['name']}")
                lines.append(f"    {record['statement']}")
            else:
                lines.append(f"  <unknown location> in {record['name']}")
            loop = record.get("loop")
            if loop:
                kind = "literal" if loop["target_kind"] == "literal" else f"variable \"{loop['target']}\""
                lines.append(f"    Reach: {loop['variable']} until {loop['reach']} ({kind})")
            if "step_index" in record:
                lines.append(f"    State log index: {record['step_index']}  State id: {record['state_id']}")
            if verbose and "env_snapshot" in record:
                snapshot = ", ".join(f"{k}={v}" for k, v in record["env_snapshot"].items())
                lines.append(f"    Env snapshot: {snapshot}")
        lines.append(f"{error.__class__.__name__}: {error.message} (rule: {error.rule or 'runtime'})")
        return "\n".join(lines)

    def to_json(self, error: BBError) -> str:
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "line": error.line_number,
                "failing_step_index": error.step_index,
            },
            "traceback": self.frame_records(),
        }
        return json.dumps(data, indent=2)
