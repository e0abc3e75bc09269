#!/usr/bin/env python3
"""
Command line behaviour that does not need a C compiler.
"""

import io
import sys

import pytest

from bfc.cli import EXIT_USAGE, build_arg_parser, main
from bfc.runtime import ERROR_MESSAGE

from conftest import c_compiler


class _Stdin:
    def __init__(self, data: bytes):
        self.buffer = io.BytesIO(data)


def test_defaults():
    args = build_arg_parser().parse_args(["prog.b"])
    assert args.emit == "exe"
    assert not args.optimize
    assert not args.run


def test_emit_ir(capsys, examples_dir):
    rc = main([str(examples_dir / "multiply.b"), "--emit", "ir", "-O"])
    out = capsys.readouterr().out
    assert rc == 0
    assert out.splitlines() == [
        "Increment(6)",
        "WithMultiplier(",
        "  MoveRight(1)",
        "  Increment(7)",
        "  MoveLeft(1)",
        ")",
        "MoveRight(1)",
        "Output",
    ]


def test_emit_ir_unoptimized_keeps_loop(capsys, examples_dir):
    assert main([str(examples_dir / "multiply.b"), "--emit", "ir"]) == 0
    assert "Loop(" in capsys.readouterr().out


def test_emit_llvm(capsys, examples_dir):
    assert main([str(examples_dir / "hello.b"), "--emit", "llvm"]) == 0
    assert "@main" in capsys.readouterr().out.replace('"', "")


def test_emit_obj(tmp_path, capsys, examples_dir):
    out = tmp_path / "hello.o"
    assert main([str(examples_dir / "hello.b"), "--emit", "obj", "-o", str(out)]) == 0
    assert out.stat().st_size > 0
    assert f"Generated {out}" in capsys.readouterr().out


def test_run(monkeypatch, capsysbinary, examples_dir):
    monkeypatch.setattr(sys, "stdin", _Stdin(b""))
    rc = main([str(examples_dir / "hello.b"), "--run"])
    assert rc == 0
    assert capsysbinary.readouterr().out == b"Hello World!\n"


def test_run_with_input(monkeypatch, capsysbinary, examples_dir):
    monkeypatch.setattr(sys, "stdin", _Stdin(b"hi\n"))
    assert main([str(examples_dir / "cat.b"), "--run", "-O"]) == 0
    assert capsysbinary.readouterr().out == b"hi"


def test_run_underflow(monkeypatch, capsysbinary, examples_dir):
    monkeypatch.setattr(sys, "stdin", _Stdin(b""))
    rc = main([str(examples_dir / "underflow.b"), "--run"])
    captured = capsysbinary.readouterr()
    assert rc == 1
    assert captured.out == b"A"
    assert captured.err.decode() == ERROR_MESSAGE


def test_missing_file(capsys, tmp_path):
    rc = main([str(tmp_path / "nope.b"), "--emit", "ir"])
    assert rc == EXIT_USAGE
    assert "error:" in capsys.readouterr().err


def test_parse_error(capsys, tmp_path):
    src = tmp_path / "bad.b"
    src.write_text("+[\n+")
    rc = main([str(src), "--emit", "ir"])
    err = capsys.readouterr().err
    assert rc == EXIT_USAGE
    assert "ParseError" in err
    assert "1:2" in err


def test_bad_emit_kind():
    with pytest.raises(SystemExit) as exc:
        main(["x.b", "--emit", "asm"])
    assert exc.value.code == 2


@pytest.mark.skipif(c_compiler() is None, reason="no C compiler available")
def test_build_executable(tmp_path, capsys, examples_dir):
    out = tmp_path / "hello"
    assert main([str(examples_dir / "hello.b"), "-o", str(out)]) == 0
    assert out.exists()
    assert f"Generated {out}" in capsys.readouterr().out
