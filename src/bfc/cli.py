"""bfc command line entry point."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from . import backend
from .api import EMIT_KINDS, CompileOptions, build_executable, compile_file, default_output
from .errors import BFCError
from .instructions import render
from .interpreter import Interpreter
from .optimizer import optimize as optimize_program
from .parser import parse

LOG = logging.getLogger("bfc.cli")

EXIT_USAGE = 2


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bfc", description="A Brainfuck to executable compiler")
    parser.add_argument("input_file", type=Path, help="Brainfuck source file")
    parser.add_argument("-o", "--output-file", type=Path, help="Output path (default: input without suffix)")
    parser.add_argument("-O", "--optimize", action="store_true", help="Rewrite loop idioms and run LLVM at O2")
    parser.add_argument("--emit", choices=EMIT_KINDS, default="exe", help="Artefact to produce (default exe)")
    parser.add_argument("--cc", default=os.environ.get("BFC_CC", "cc"), help="C compiler used for linking")
    parser.add_argument("--keep-object", action="store_true", help="Keep the object file next to the output")
    parser.add_argument("--run", action="store_true", help="Execute with the reference interpreter instead")
    parser.add_argument("--log-level", default=os.environ.get("BFC_LOG", "WARNING"),
                        help="Logging level (default WARNING)")
    return parser


def _write_stdout_byte(byte: int) -> None:
    sys.stdout.buffer.write(bytes((byte,)))
    sys.stdout.buffer.flush()


def _run(path: Path, optimize: bool, stdin: bytes) -> int:
    program = parse(path.read_text(encoding="utf-8"))
    if optimize:
        program = optimize_program(program)
    outcome = Interpreter(program).run(stdin, on_output=_write_stdout_byte)
    if outcome.error:
        sys.stderr.write(outcome.error)
    return outcome.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    LOG.debug("arguments: %s", args)

    options = CompileOptions(
        optimize=args.optimize,
        cc=args.cc,
        keep_object=args.keep_object,
        emit=args.emit,
    )
    try:
        if args.run:
            return _run(args.input_file, args.optimize, sys.stdin.buffer.read())

        if args.emit == "exe":
            out = build_executable(args.input_file, args.output_file, options=options)
            print(f"Generated {out}")
            return 0

        result = compile_file(args.input_file, options=options)
        if args.emit == "ir":
            print(render(result.program))
        elif args.emit == "llvm":
            print(backend.emit_llvm(result.module, optimize=args.optimize))
        else:
            out = args.output_file or default_output(args.input_file).with_suffix(".o")
            Path(out).write_bytes(backend.emit_object(result.module, optimize=args.optimize))
            print(f"Generated {out}")
        return 0
    except BFCError as e:
        sys.stderr.write(f"{e}\n")
        return EXIT_USAGE
    except OSError as e:
        sys.stderr.write(f"error: {e}\n")
        return EXIT_USAGE


if __name__ == "__main__":
    raise SystemExit(main())
