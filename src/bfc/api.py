from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from llvmlite import ir

from . import backend
from .codegen import generate
from .instructions import Program
from .optimizer import optimize as optimize_program
from .parser import parse

LOGGER = logging.getLogger("bfc.api")

EMIT_KINDS = ("exe", "llvm", "obj", "ir")


def _default_cc() -> str:
    return os.environ.get("BFC_CC", "cc")


@dataclass(frozen=True)
class CompileOptions:
    optimize: bool = False
    cc: str = field(default_factory=_default_cc)
    keep_object: bool = False
    emit: str = "exe"

    def __post_init__(self) -> None:
        if self.emit not in EMIT_KINDS:
            raise ValueError(f"emit must be one of {', '.join(EMIT_KINDS)}, got {self.emit!r}")


@dataclass(frozen=True)
class CompileResult:
    program: Program
    module: ir.Module

    @property
    def llvm_ir(self) -> str:
        return str(self.module)


def compile_string(source: str, *, options: Optional[CompileOptions] = None, module_name: str = "bf") -> CompileResult:
    """Parse, optionally optimize, and lower ``source`` to an LLVM module."""
    opts = options or CompileOptions()
    program = parse(source)
    if opts.optimize:
        program = optimize_program(program)
    module = generate(program, module_name=module_name)
    LOGGER.debug("compiled %s (optimize=%s)", module_name, opts.optimize)
    return CompileResult(program=program, module=module)


def compile_file(path: str | Path, *, options: Optional[CompileOptions] = None, encoding: str = "utf-8") -> CompileResult:
    p = Path(path)
    return compile_string(p.read_text(encoding=encoding), options=options, module_name=p.stem or "bf")


def default_output(path: str | Path) -> Path:
    """Executable path next to the input: the input path without its suffix."""
    p = Path(path).resolve()
    out = p.with_suffix("")
    if out == p:
        out = p.with_name(p.name + ".out")
    return out


def build_executable(path: str | Path, output: Optional[str | Path] = None, *,
                     options: Optional[CompileOptions] = None) -> Path:
    """Compile the source file at ``path`` into a native executable."""
    opts = options or CompileOptions()
    result = compile_file(path, options=opts)
    out = Path(output).resolve() if output is not None else default_output(path)
    obj = backend.emit_object(result.module, optimize=opts.optimize)
    return backend.link_executable(obj, out, cc=opts.cc, keep_object=opts.keep_object)
