"""
Native backend: turns a generated module into an object file or executable.

    llmod = verify_module(module)
    optimize_module(llmod, tm, optimize=True)
    obj = tm.emit_object(llmod)
    link_executable(obj, out, cc="cc")

Linking compiles the bundled runtime helpers alongside the object with the
external C compiler.
"""
from __future__ import annotations

import logging
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from llvmlite import binding as llvm
from llvmlite import ir

from .errors import BFCCodegenError, make_link_error
from .runtime import helpers_source

LOGGER = logging.getLogger("bfc.backend")

_initialized = False


def ensure_llvm() -> None:
    """Initialise the native target once per process."""
    global _initialized
    if _initialized:
        return
    llvm.initialize_native_target()
    llvm.initialize_native_asmprinter()
    _initialized = True


def create_target_machine(optimize: bool = False) -> llvm.TargetMachine:
    ensure_llvm()
    target = llvm.Target.from_default_triple()
    return target.create_target_machine(
        cpu=llvm.get_host_cpu_name(),
        features=llvm.get_host_cpu_features().flatten(),
        opt=2 if optimize else 0,
        reloc="pic",
        codemodel="default",
    )


def verify_module(module: ir.Module, tm: Optional[llvm.TargetMachine] = None) -> llvm.ModuleRef:
    """Parse the textual IR and run the LLVM verifier on it."""
    ensure_llvm()
    if tm is None:
        tm = create_target_machine()
    try:
        llmod = llvm.parse_assembly(str(module))
        llmod.triple = tm.triple
        llmod.data_layout = str(tm.target_data)
        llmod.verify()
    except RuntimeError as e:
        raise BFCCodegenError(message=f"CodegenError: generated module failed verification: {e}") from e
    return llmod


def optimize_module(llmod: llvm.ModuleRef, tm: llvm.TargetMachine, optimize: bool) -> None:
    """Run the default<O2> pipeline (or default<O0> when not optimizing)."""
    level = 2 if optimize else 0
    pto = llvm.create_pipeline_tuning_options(speed_level=level)
    pb = llvm.create_pass_builder(tm, pto)
    mpm = pb.getModulePassManager()
    mpm.run(llmod, pb)
    LOGGER.debug("ran default<O%d> pipeline on %s", level, llmod.name)


def emit_object(module: ir.Module, optimize: bool = False) -> bytes:
    tm = create_target_machine(optimize)
    llmod = verify_module(module, tm)
    optimize_module(llmod, tm, optimize)
    return tm.emit_object(llmod)


def emit_llvm(module: ir.Module, optimize: bool = False) -> str:
    """Verified (and optionally optimized) textual IR."""
    tm = create_target_machine(optimize)
    llmod = verify_module(module, tm)
    optimize_module(llmod, tm, optimize)
    return str(llmod)


def link_command(obj_path: Path, out: Path, cc: str) -> List[str]:
    return [cc, "-O2", "-o", str(out), str(obj_path), str(helpers_source())]


def link_executable(obj: bytes, out: Path, cc: str = "cc", keep_object: bool = False) -> Path:
    """Write ``obj`` to disk and link it with the runtime helpers into ``out``."""
    out = Path(out)
    with tempfile.TemporaryDirectory(prefix="bfc-") as tmp:
        obj_path = (out.with_suffix(".o") if keep_object else Path(tmp) / f"{out.stem or 'a'}.o")
        obj_path.write_bytes(obj)

        cmd = link_command(obj_path, out, cc)
        LOGGER.debug("linking: %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise make_link_error(message=f"could not run C compiler ({e.strerror}; not found?)", command=cmd) from e
        if proc.returncode != 0:
            raise make_link_error(message=f"C compiler exited with status {proc.returncode}",
                                  command=cmd, stderr=proc.stderr)
    LOGGER.info("wrote %s", out)
    return out
