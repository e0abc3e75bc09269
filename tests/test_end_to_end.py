#!/usr/bin/env python3
"""
Compile, link and run real executables. Needs a C compiler on PATH.
"""

import subprocess

import pytest

from bfc.api import CompileOptions, build_executable
from bfc.errors import BFCLinkError
from bfc.runtime import ERROR_MESSAGE

from conftest import c_compiler

pytestmark = pytest.mark.skipif(c_compiler() is None, reason="no C compiler available")


def _build(tmp_path, source, optimize=False, name="prog"):
    src = tmp_path / f"{name}.b"
    src.write_text(source)
    out = build_executable(src, tmp_path / name, options=CompileOptions(optimize=optimize))
    assert out.exists()
    return out


def _exec(path, stdin=b""):
    return subprocess.run([str(path)], input=stdin, capture_output=True, timeout=30)


@pytest.mark.parametrize("optimize", [False, True])
def test_prints_byte(tmp_path, optimize):
    proc = _exec(_build(tmp_path, "+++.", optimize))
    assert proc.returncode == 0
    assert proc.stdout == b"\x03"


@pytest.mark.parametrize("optimize", [False, True])
def test_underflow_exits_with_diagnostic(tmp_path, optimize):
    proc = _exec(_build(tmp_path, "<", optimize))
    assert proc.returncode == 1
    assert proc.stdout == b""
    assert proc.stderr.decode() == ERROR_MESSAGE


@pytest.mark.parametrize("source,optimize", [
    ("+[<]", False),
    ("+[<]", True),
    ("+[-<+>]", True),
    ("+[-<++>]", True),
])
def test_helper_underflow_exits_with_diagnostic(tmp_path, source, optimize):
    proc = _exec(_build(tmp_path, source, optimize))
    assert proc.returncode == 1
    assert proc.stdout == b""
    assert proc.stderr.decode() == ERROR_MESSAGE


@pytest.mark.parametrize("source", ["[-<+>]", "[-<++>]", "[-<+>]+."])
def test_leftward_rewrite_on_zero_origin_exits_cleanly(tmp_path, source):
    proc = _exec(_build(tmp_path, source, optimize=True))
    assert proc.returncode == 0
    assert proc.stderr == b""
    assert proc.stdout == (b"\x01" if source.endswith(".") else b"")


@pytest.mark.parametrize("optimize", [False, True])
def test_output_before_fault_is_kept(tmp_path, examples_dir, optimize):
    proc = _exec(_build(tmp_path, (examples_dir / "underflow.b").read_text(), optimize))
    assert proc.returncode == 1
    assert proc.stdout == b"A"
    assert proc.stderr.decode() == ERROR_MESSAGE


@pytest.mark.parametrize("optimize", [False, True])
def test_hello_world(tmp_path, examples_dir, optimize):
    proc = _exec(_build(tmp_path, (examples_dir / "hello.b").read_text(), optimize))
    assert proc.returncode == 0
    assert proc.stdout == b"Hello World!\n"


@pytest.mark.parametrize("optimize", [False, True])
def test_cat(tmp_path, examples_dir, optimize):
    proc = _exec(_build(tmp_path, (examples_dir / "cat.b").read_text(), optimize), b"A\n")
    assert proc.returncode == 0
    assert proc.stdout == b"A"


@pytest.mark.parametrize("optimize", [False, True])
def test_multiply(tmp_path, examples_dir, optimize):
    proc = _exec(_build(tmp_path, (examples_dir / "multiply.b").read_text(), optimize))
    assert proc.stdout == b"*"


def test_eof_reads_zero(tmp_path):
    proc = _exec(_build(tmp_path, ",+."), b"")
    assert proc.stdout == b"\x01"


def test_tape_grows_past_initial_size(tmp_path):
    # the value is moved one cell past the first 1000
    proc = _exec(_build(tmp_path, ">" * 1000 + "+++[>+<-]>.", optimize=True))
    assert proc.returncode == 0
    assert proc.stdout == b"\x03"


def test_keep_object(tmp_path):
    src = tmp_path / "keep.b"
    src.write_text("+.")
    options = CompileOptions(keep_object=True)
    out = build_executable(src, tmp_path / "keep", options=options)
    assert out.with_suffix(".o").exists()


def test_missing_compiler(tmp_path):
    src = tmp_path / "x.b"
    src.write_text("+.")
    with pytest.raises(BFCLinkError) as exc:
        build_executable(src, tmp_path / "x", options=CompileOptions(cc="definitely-not-a-cc"))
    assert "LinkError" in str(exc.value)
    assert exc.value.command[0] == "definitely-not-a-cc"
