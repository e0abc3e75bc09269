"""
Runtime support ABI shared by the code generator and the linker step.

The generated ``main`` never touches the tape allocation logic directly; it
calls into the helpers compiled from ``stdlib/helpers.c``. Every helper takes
the tape pointer, tape length and/or cell index by reference where it may
change them, so later instructions observe the update.

    void moveRight(char **cells, size_t *len, size_t *cur, size_t n)
    void moveRightUntilZero(char **cells, size_t *len, size_t *cur, size_t step)
    bool moveLeftUntilZero(char *cells, size_t *cur, size_t step)
    void input(char *cells, size_t cur, char **inputBuffer)
    void moveValueRight(char **cells, size_t *len, size_t cur, size_t n)
    bool moveValueLeft(char *cells, size_t cur, size_t n)

The ``bool`` helpers return true on a leftward underflow.
"""
from __future__ import annotations

import ctypes
import sys
from dataclasses import dataclass
from importlib import resources
from pathlib import Path

from llvmlite import ir

INITIAL_CELLS = 256
ERROR_MESSAGE = "Error: Cannot move pointer to negative cell!\n"
ERROR_EXIT_CODE = 1


def helpers_source() -> Path:
    """Filesystem path of the bundled C runtime helpers."""
    return Path(str(resources.files("bfc") / "stdlib" / "helpers.c"))


def _int_type(ctype) -> ir.IntType:
    return ir.IntType(ctypes.sizeof(ctype) * 8)


def stdio_symbols(platform: str = sys.platform) -> tuple[str, str]:
    """Names of the C library's stdout/stderr ``FILE *`` globals."""
    if platform == "darwin" or "bsd" in platform:
        return "__stdoutp", "__stderrp"
    return "stdout", "stderr"


@dataclass(frozen=True)
class Types:
    void_t: ir.VoidType
    bool_t: ir.IntType
    char_t: ir.IntType
    char_ptr_t: ir.PointerType
    char_ptr_ptr_t: ir.PointerType
    int_t: ir.IntType
    size_t_t: ir.IntType
    size_t_ptr_t: ir.PointerType
    file_ptr_t: ir.PointerType

    @classmethod
    def native(cls) -> "Types":
        char_t = _int_type(ctypes.c_char)
        size_t_t = _int_type(ctypes.c_size_t)
        char_ptr_t = char_t.as_pointer()
        return cls(
            void_t=ir.VoidType(),
            bool_t=ir.IntType(1),
            char_t=char_t,
            char_ptr_t=char_ptr_t,
            char_ptr_ptr_t=char_ptr_t.as_pointer(),
            int_t=_int_type(ctypes.c_int),
            size_t_t=size_t_t,
            size_t_ptr_t=size_t_t.as_pointer(),
            # FILE is opaque to us; an i8* is enough to pass it through
            file_ptr_t=char_ptr_t,
        )


class Runtime:
    """Declarations of libc and helper functions inside one module."""

    def __init__(self, module: ir.Module, types: Types, platform: str = sys.platform):
        self.module = module
        self.types = types
        t = types

        self.calloc_f = self._declare(t.char_ptr_t, [t.size_t_t, t.size_t_t], "calloc")
        self.free_f = self._declare(t.void_t, [t.char_ptr_t], "free")
        self.fputs_f = self._declare(t.int_t, [t.char_ptr_t, t.file_ptr_t], "fputs")
        self.putchar_f = self._declare(t.int_t, [t.int_t], "putchar")
        self.fflush_f = self._declare(t.int_t, [t.file_ptr_t], "fflush")

        self.move_right_f = self._declare(
            t.void_t, [t.char_ptr_ptr_t, t.size_t_ptr_t, t.size_t_ptr_t, t.size_t_t], "moveRight")
        self.move_right_until_zero_f = self._declare(
            t.void_t, [t.char_ptr_ptr_t, t.size_t_ptr_t, t.size_t_ptr_t, t.size_t_t], "moveRightUntilZero")
        self.move_left_until_zero_f = self._declare(
            t.bool_t, [t.char_ptr_t, t.size_t_ptr_t, t.size_t_t], "moveLeftUntilZero")
        self.input_f = self._declare(
            t.void_t, [t.char_ptr_t, t.size_t_t, t.char_ptr_ptr_t], "input")
        self.move_value_right_f = self._declare(
            t.void_t, [t.char_ptr_ptr_t, t.size_t_ptr_t, t.size_t_t, t.size_t_t], "moveValueRight")
        self.move_value_left_f = self._declare(
            t.bool_t, [t.char_ptr_t, t.size_t_t, t.size_t_t], "moveValueLeft")

        stdout_name, stderr_name = stdio_symbols(platform)
        self.stdout_ptr_v = self._external_global(t.file_ptr_t, stdout_name)
        self.stderr_ptr_v = self._external_global(t.file_ptr_t, stderr_name)
        self.error_string_v = self._create_string(ERROR_MESSAGE, "errorString")

    def _declare(self, return_type, param_types, name: str) -> ir.Function:
        fnty = ir.FunctionType(return_type, param_types)
        return ir.Function(self.module, fnty, name=name)

    def _external_global(self, typ, name: str) -> ir.GlobalVariable:
        gv = ir.GlobalVariable(self.module, typ, name=name)
        gv.linkage = "external"
        gv.align = 8
        return gv

    def _create_string(self, value: str, name: str) -> ir.GlobalVariable:
        data = bytearray(value.encode("utf-8")) + b"\x00"
        const = ir.Constant(ir.ArrayType(self.types.char_t, len(data)), data)
        gv = ir.GlobalVariable(self.module, const.type, name=name)
        gv.global_constant = True
        gv.linkage = "private"
        gv.unnamed_addr = True
        gv.initializer = const
        gv.align = 1
        return gv
