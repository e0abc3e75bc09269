"""
LLVM code generation for the instruction tree.

API:
    from bfc.codegen import CodeGen, generate
    module = generate(program, module_name="hello")
    print(module)

The generated module holds a single ``int main()``. Its shape is fixed:

    entry:   allocas for the tape state, calloc the initial tape
             ... lowered instructions (loops add header/body/merge blocks,
                 WithMultiplier a body skipped for a zero multiplier) ...
             br return
    error:   fputs(errorString, stderr); br return
    return:  phi [0, <last normal block>], [1, error]
             free(cells); free(inputBuffer); ret

Every fault site branches to the one ``error`` block, which is kept last in
the block list. ``return`` frees both heap buffers exactly once whichever
predecessor reached it.
"""
from __future__ import annotations

import logging
import sys
from typing import Callable, Dict, Optional

from llvmlite import ir

from .instructions import (
    Decrement, Increment, Input, Instruction, Loop, MoveLeft, MoveLeftUntilZero,
    MoveRight, MoveRightUntilZero, MoveValueLeft, MoveValueRight, Output, Program,
    SetToZero, WithMultiplier,
)
from .runtime import ERROR_EXIT_CODE, INITIAL_CELLS, Runtime, Types

LOGGER = logging.getLogger("bfc.codegen")

# The active scale register, or None outside a WithMultiplier body.
Scale = Optional[ir.Value]


class CodeGen:
    """Lowers one program into the ``main`` function of a fresh module."""

    def __init__(self, instructions: Program, module_name: str = "bf", platform: str = sys.platform):
        self.instructions = instructions
        self.module = ir.Module(name=module_name)
        self.types = Types.native()
        self.runtime = Runtime(self.module, self.types, platform=platform)

        t = self.types
        self.main_f = ir.Function(self.module, ir.FunctionType(t.int_t, []), name="main")

        entry_block = self.main_f.append_basic_block("entry")
        self.main_error_block = self.main_f.append_basic_block("error")

        self.builder = ir.IRBuilder(entry_block)

        # addressable state, so the runtime helpers can update it by reference
        self.cells_alloca = self.builder.alloca(t.char_ptr_t, name="cells")
        self.cells_length_alloca = self.builder.alloca(t.size_t_t, name="cellsLength")
        self.current_cell_alloca = self.builder.alloca(t.size_t_t, name="currentCell")
        self.input_buffer_alloca = self.builder.alloca(t.char_ptr_t, name="inputBuffer")

        self._lowering: Dict[type, Callable[[Instruction, Scale], None]] = {
            MoveRight: self._move_right,
            MoveLeft: self._move_left,
            Increment: self._change_cell,
            Decrement: self._change_cell,
            Output: self._output,
            Input: self._input,
            Loop: self._loop,
            MoveRightUntilZero: self._move_right_until_zero,
            MoveLeftUntilZero: self._move_left_until_zero,
            SetToZero: self._set_to_zero,
            WithMultiplier: self._with_multiplier,
            MoveValueRight: self._move_value_right,
            MoveValueLeft: self._move_value_left,
        }
        self._generated = False

    # ---------------- Function skeleton ----------------
    def generate_module(self) -> ir.Module:
        if self._generated:
            return self.module
        t = self.types
        b = self.builder

        cells = b.call(self.runtime.calloc_f, [self._size(INITIAL_CELLS), self._size(1)], name="initialCells")
        b.store(cells, self.cells_alloca)
        b.store(self._size(INITIAL_CELLS), self.cells_length_alloca)
        b.store(self._size(0), self.current_cell_alloca)
        b.store(ir.Constant(t.char_ptr_t, None), self.input_buffer_alloca)

        self.generate_instructions(self.instructions, None)

        return_block = self.main_f.append_basic_block("return")
        b.branch(return_block)
        last_block = b.block

        b.position_at_end(self.main_error_block)
        error_string = b.gep(
            self.runtime.error_string_v,
            [ir.Constant(ir.IntType(32), 0), ir.Constant(ir.IntType(32), 0)],
            inbounds=True, name="errorString",
        )
        stderr_v = b.load(self.runtime.stderr_ptr_v, name="stderr")
        b.call(self.runtime.fputs_f, [error_string, stderr_v])
        b.branch(return_block)

        b.position_at_end(return_block)
        phi = b.phi(t.int_t, name="returnValue")
        phi.add_incoming(ir.Constant(t.int_t, 0), last_block)
        phi.add_incoming(ir.Constant(t.int_t, ERROR_EXIT_CODE), self.main_error_block)

        b.call(self.runtime.free_f, [b.load(self.cells_alloca, name="cells")])
        b.call(self.runtime.free_f, [b.load(self.input_buffer_alloca, name="inputBuffer")])
        b.ret(phi)

        self._generated = True
        LOGGER.debug("generated main with %d basic blocks", len(self.main_f.blocks))
        return self.module

    def generate_instructions(self, instructions: Program, scale: Scale) -> None:
        """Lower a sequence; ``scale`` belongs to this sequence only."""
        for instruction in instructions:
            lower = self._lowering.get(type(instruction))
            if lower is None:
                raise TypeError(f"not an instruction: {instruction!r}")
            lower(instruction, scale)

    # ---------------- Helpers ----------------
    def _new_block(self, name: str) -> ir.Block:
        # keep the shared error block last
        return self.main_f.insert_basic_block(len(self.main_f.blocks) - 1, name=name)

    def _size(self, value: int) -> ir.Constant:
        return ir.Constant(self.types.size_t_t, value)

    def _load_cells(self) -> ir.Value:
        return self.builder.load(self.cells_alloca, name="load")

    def _load_current_cell(self) -> ir.Value:
        return self.builder.load(self.current_cell_alloca, name="load")

    def _current_cell_ptr(self) -> ir.Value:
        return self.builder.gep(self._load_cells(), [self._load_current_cell()], name="currentCellPtr")

    def _branch_on_error(self, failed: ir.Value, name: str) -> None:
        continue_block = self._new_block(name)
        self.builder.cbranch(failed, self.main_error_block, continue_block)
        self.builder.position_at_end(continue_block)

    # ---------------- Per-instruction lowering ----------------
    def _move_right(self, instruction: MoveRight, scale: Scale) -> None:
        self.builder.call(self.runtime.move_right_f, [
            self.cells_alloca, self.cells_length_alloca, self.current_cell_alloca,
            self._size(instruction.amount),
        ])

    def _move_left(self, instruction: MoveLeft, scale: Scale) -> None:
        b = self.builder
        current_cell = b.sub(self._load_current_cell(), self._size(instruction.amount),
                             name="decrementedCurrentCell")
        return_with_error = b.icmp_signed("<", current_cell, self._size(0), name="returnWithError")
        self._branch_on_error(return_with_error, "moveLeft")
        b.store(current_cell, self.current_cell_alloca)

    def _change_cell(self, instruction, scale: Scale) -> None:
        b = self.builder
        ptr = self._current_cell_ptr()
        value = b.load(ptr, name="load")

        amount = ir.Constant(self.types.char_t, instruction.amount % 256)
        if scale is not None:
            amount = b.mul(amount, scale, name="multipliedAmount")

        if isinstance(instruction, Increment):
            value = b.add(value, amount, name="incrementedCurrentCell")
        else:
            value = b.sub(value, amount, name="decrementedCurrentCell")
        b.store(value, ptr)

    def _output(self, instruction: Output, scale: Scale) -> None:
        b = self.builder
        value = b.load(self._current_cell_ptr(), name="load")
        value = b.zext(value, self.types.int_t, name="extendedCurrentCellValue")
        b.call(self.runtime.putchar_f, [value])
        # flush so output interleaves with the diagnostic on stderr
        stdout_v = b.load(self.runtime.stdout_ptr_v, name="stdout")
        b.call(self.runtime.fflush_f, [stdout_v])

    def _input(self, instruction: Input, scale: Scale) -> None:
        self.builder.call(self.runtime.input_f, [
            self._load_cells(), self._load_current_cell(), self.input_buffer_alloca,
        ])

    def _loop(self, instruction: Loop, scale: Scale) -> None:
        b = self.builder
        loop_block = self._new_block("loop")
        then_block = self._new_block("then")
        merge_block = self._new_block("merge")

        b.branch(loop_block)
        b.position_at_end(loop_block)
        value = b.load(self._current_cell_ptr(), name="load")
        continue_loop = b.icmp_unsigned("!=", value, ir.Constant(self.types.char_t, 0), name="continueLoop")
        b.cbranch(continue_loop, then_block, merge_block)

        b.position_at_end(then_block)
        # a loop body never inherits the enclosing scale
        self.generate_instructions(instruction.body, None)
        b.branch(loop_block)

        b.position_at_end(merge_block)

    def _move_right_until_zero(self, instruction: MoveRightUntilZero, scale: Scale) -> None:
        self.builder.call(self.runtime.move_right_until_zero_f, [
            self.cells_alloca, self.cells_length_alloca, self.current_cell_alloca,
            self._size(instruction.step),
        ])

    def _move_left_until_zero(self, instruction: MoveLeftUntilZero, scale: Scale) -> None:
        failed = self.builder.call(self.runtime.move_left_until_zero_f, [
            self._load_cells(), self.current_cell_alloca, self._size(instruction.step),
        ], name="returnWithError")
        self._branch_on_error(failed, "continue")

    def _set_to_zero(self, instruction: SetToZero, scale: Scale) -> None:
        self.builder.store(ir.Constant(self.types.char_t, 0), self._current_cell_ptr())

    def _with_multiplier(self, instruction: WithMultiplier, scale: Scale) -> None:
        b = self.builder
        multiplier = b.load(self._current_cell_ptr(), name="multiplier")
        body_block = self._new_block("multiply")
        done_block = self._new_block("multiplyDone")
        has_multiplier = b.icmp_unsigned("!=", multiplier, ir.Constant(self.types.char_t, 0),
                                         name="hasMultiplier")
        b.cbranch(has_multiplier, body_block, done_block)

        b.position_at_end(body_block)
        self.generate_instructions(instruction.body, multiplier)
        b.branch(done_block)

        # the body returns to the origin cell before it is cleared
        b.position_at_end(done_block)
        b.store(ir.Constant(self.types.char_t, 0), self._current_cell_ptr())

    def _move_value_right(self, instruction: MoveValueRight, scale: Scale) -> None:
        self.builder.call(self.runtime.move_value_right_f, [
            self.cells_alloca, self.cells_length_alloca, self._load_current_cell(),
            self._size(instruction.amount),
        ])

    def _move_value_left(self, instruction: MoveValueLeft, scale: Scale) -> None:
        failed = self.builder.call(self.runtime.move_value_left_f, [
            self._load_cells(), self._load_current_cell(), self._size(instruction.amount),
        ], name="returnWithError")
        self._branch_on_error(failed, "continue")


def generate(program: Program, module_name: str = "bf", platform: str = sys.platform) -> ir.Module:
    """Lower ``program`` into a module whose ``main`` runs it."""
    return CodeGen(program, module_name=module_name, platform=platform).generate_module()
