"""Bare Bones entry point and command-line wiring."""
from __future__ import annotations
import argparse
import sys
from typing import List, Optional, Tuple

from interpreter import Interpreter, TracebackFormatter, VariableStore
from segmenter import BBError


def format_variables(store: VariableStore) -> List[str]:
    return [f"{name} = {value}" for name, value in store.items()]


def run_program(
    source_text: str,
    filename: str,
    *,
    verbose: bool = False,
    traceback_json: bool = False,
) -> Tuple[int, Optional[VariableStore]]:
    interpreter = Interpreter(source=source_text, filename=filename, verbose=verbose)
    try:
        store = interpreter.run()
    except BBError as error:
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=verbose), file=sys.stderr)
        if traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1, None
    for line in format_variables(store):
        print(line)
    return 0, store


def _read_source(filename: str) -> Optional[str]:
    try:
        with open(filename, "r", encoding="utf-8") as handle:
            return handle.read()
    except OSError as exc:
        print(f"Failed to read {filename}: {exc}", file=sys.stderr)
        return None


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Bare Bones interpreter")
    parser.add_argument("programs", nargs="*", help="Source file paths, or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit variable snapshots in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    args = parser.parse_args(argv)

    if args.source_mode:
        if len(args.programs) != 1:
            print("-source requires exactly one program string", file=sys.stderr)
            return 1
        code, _ = run_program(args.programs[0], "<string>", verbose=args.verbose, traceback_json=args.traceback_json)
        return code

    if not args.programs:
        try:
            filename = input("Enter a filename: ").strip()
        except EOFError:
            print()
            return 1
        source_text = _read_source(filename)
        if source_text is None:
            return 1
        code, _ = run_program(source_text, filename, verbose=args.verbose, traceback_json=args.traceback_json)
        return code

    for filename in args.programs:
        print(f"Running program: {filename}")
        source_text = _read_source(filename)
        if source_text is None:
            return 1
        code, _ = run_program(source_text, filename, verbose=args.verbose, traceback_json=args.traceback_json)
        if code != 0:
            return code
    return 0


if __name__ == "__main__":
    raise SystemExit(run_cli())
