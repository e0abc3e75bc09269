"""
Reference executor for instruction trees.

The tree is flattened into integer opcode/argument arrays with precomputed jump
targets, then stepped by a jitted loop that stops for anything needing
Python: output, input, tape growth, faults and completion. Semantics match
the code generator's lowering, including the scale register rules: a Loop
body starts unscaled, and a WithMultiplier body uses its own register.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
from numba import njit

from .errors import BFCStepLimitError
from .instructions import (
    Decrement, Increment, Input, Loop, MoveLeft, MoveLeftUntilZero, MoveRight,
    MoveRightUntilZero, MoveValueLeft, MoveValueRight, Output, Program, SetToZero,
    WithMultiplier,
)
from .optimizer import optimize as optimize_program
from .parser import parse
from .runtime import ERROR_EXIT_CODE, ERROR_MESSAGE, INITIAL_CELLS

LOGGER = logging.getLogger("bfc.interpreter")

# opcodes
OP_RIGHT = 0
OP_LEFT = 1
OP_ADD = 2
OP_SUB = 3
OP_OUT = 4
OP_IN = 5
OP_OPEN = 6
OP_CLOSE = 7
OP_SCAN_RIGHT = 8
OP_SCAN_LEFT = 9
OP_CLEAR = 10
OP_SCALE = 11
OP_UNSCALE = 12
OP_MOVE_VALUE_RIGHT = 13
OP_MOVE_VALUE_LEFT = 14

# stop reasons
STOP_DONE = 0
STOP_OUTPUT = 1
STOP_INPUT = 2
STOP_GROW = 3
STOP_FAULT = 4
STOP_STEPS = 5

NO_SCALE = -1


@njit(cache=True)
def jit_run(code, arg, slot, tape, pc, pointer, scales, max_steps):
    """
    Step the flattened program until something needs the caller.

    Returns (pc, pointer, stop_reason, needed_index, steps). On STOP_GROW the
    pc still points at the instruction that needs a cell at needed_index;
    re-running it after growth is safe because nothing was written yet.
    """
    prog_len = len(code)
    mem_len = len(tape)
    steps = 0

    while pc < prog_len:
        if steps >= max_steps:
            return pc, pointer, STOP_STEPS, 0, steps
        op = code[pc]
        a = arg[pc]
        steps += 1

        if op == OP_RIGHT:
            if pointer + a >= mem_len:
                return pc, pointer, STOP_GROW, pointer + a, steps
            pointer += a
        elif op == OP_LEFT:
            if pointer < a:
                return pc, pointer, STOP_FAULT, 0, steps
            pointer -= a
        elif op == OP_ADD or op == OP_SUB:
            s = slot[pc]
            if s != NO_SCALE:
                a = a * scales[s]
            if op == OP_ADD:
                tape[pointer] = (tape[pointer] + a) & 255
            else:
                tape[pointer] = (tape[pointer] - a) & 255
        elif op == OP_OUT:
            return pc + 1, pointer, STOP_OUTPUT, 0, steps
        elif op == OP_IN:
            return pc + 1, pointer, STOP_INPUT, 0, steps
        elif op == OP_OPEN:
            if tape[pointer] == 0:
                pc = a
                continue
        elif op == OP_CLOSE:
            pc = a
            continue
        elif op == OP_SCAN_RIGHT:
            while tape[pointer] != 0:
                if pointer + a >= mem_len:
                    # keep the progress; the grown cell is zero
                    return pc, pointer + a, STOP_GROW, pointer + a, steps
                pointer += a
        elif op == OP_SCAN_LEFT:
            p = pointer
            while tape[p] != 0:
                if p < a:
                    return pc, pointer, STOP_FAULT, 0, steps
                p -= a
            pointer = p
        elif op == OP_CLEAR:
            tape[pointer] = 0
        elif op == OP_SCALE:
            if tape[pointer] == 0:
                # zero multiplier: the body is skipped, UNSCALE still runs
                pc = a
                continue
            scales[slot[pc]] = tape[pointer]
        elif op == OP_UNSCALE:
            tape[pointer] = 0
        elif op == OP_MOVE_VALUE_RIGHT:
            if pointer + a >= mem_len:
                return pc, pointer, STOP_GROW, pointer + a, steps
            tape[pointer + a] = (tape[pointer + a] + tape[pointer]) & 255
            tape[pointer] = 0
        elif op == OP_MOVE_VALUE_LEFT:
            if tape[pointer] != 0:
                if pointer < a:
                    return pc, pointer, STOP_FAULT, 0, steps
                tape[pointer - a] = (tape[pointer - a] + tape[pointer]) & 255
                tape[pointer] = 0
        pc += 1

    return pc, pointer, STOP_DONE, 0, steps


# ---------------- Flattening ----------------
@dataclass
class FlatProgram:
    code: np.ndarray
    arg: np.ndarray
    slot: np.ndarray
    scale_slots: int


def flatten(program: Program) -> FlatProgram:
    code: List[int] = []
    arg: List[int] = []
    slot: List[int] = []
    depth_max = 0

    def emit(op: int, a: int = 0, s: int = NO_SCALE) -> int:
        code.append(op)
        arg.append(a)
        slot.append(s)
        return len(code) - 1

    def walk(nodes: Program, scale: int, depth: int) -> None:
        # ``scale`` is the slot of this sequence's own register, ``depth`` the
        # number of WithMultiplier regions enclosing it
        nonlocal depth_max
        for n in nodes:
            if isinstance(n, MoveRight):
                emit(OP_RIGHT, n.amount)
            elif isinstance(n, MoveLeft):
                emit(OP_LEFT, n.amount)
            elif isinstance(n, Increment):
                emit(OP_ADD, n.amount % 256, scale)
            elif isinstance(n, Decrement):
                emit(OP_SUB, n.amount % 256, scale)
            elif isinstance(n, Output):
                emit(OP_OUT)
            elif isinstance(n, Input):
                emit(OP_IN)
            elif isinstance(n, Loop):
                open_pc = emit(OP_OPEN)
                walk(n.body, NO_SCALE, depth)
                emit(OP_CLOSE, open_pc)
                arg[open_pc] = len(code)
            elif isinstance(n, MoveRightUntilZero):
                emit(OP_SCAN_RIGHT, n.step)
            elif isinstance(n, MoveLeftUntilZero):
                emit(OP_SCAN_LEFT, n.step)
            elif isinstance(n, SetToZero):
                emit(OP_CLEAR)
            elif isinstance(n, WithMultiplier):
                depth_max = max(depth_max, depth + 1)
                scale_pc = emit(OP_SCALE, 0, depth)
                walk(n.body, depth, depth + 1)
                arg[scale_pc] = emit(OP_UNSCALE)
            elif isinstance(n, MoveValueRight):
                emit(OP_MOVE_VALUE_RIGHT, n.amount)
            elif isinstance(n, MoveValueLeft):
                emit(OP_MOVE_VALUE_LEFT, n.amount)
            else:
                raise TypeError(f"not an instruction: {n!r}")

    walk(program, NO_SCALE, 0)
    return FlatProgram(
        code=np.array(code, dtype=np.int32),
        arg=np.array(arg, dtype=np.int64),
        slot=np.array(slot, dtype=np.int32),
        scale_slots=depth_max,
    )


# ---------------- Driver ----------------
def _grown_size(index: int) -> int:
    size = 1
    while size < index + 1:
        size <<= 1
    return size


@dataclass
class RunResult:
    output: bytes
    tape: np.ndarray
    index: int
    exit_code: int = 0
    error: Optional[str] = None
    steps: int = 0

    @property
    def faulted(self) -> bool:
        return self.exit_code == ERROR_EXIT_CODE


@dataclass
class Interpreter:
    program: Program
    max_steps: Optional[int] = None
    batch: int = 1_000_000
    _flat: FlatProgram = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._flat = flatten(self.program)

    def run(
        self,
        stdin: bytes = b"",
        tape: Optional[np.ndarray] = None,
        index: int = 0,
        on_output=None,
    ) -> RunResult:
        """Execute the program; ``on_output`` receives each byte as it is written."""
        if tape is None:
            tape = np.zeros(INITIAL_CELLS, dtype=np.uint8)
        else:
            tape = np.array(tape, dtype=np.uint8)
        if index >= len(tape):
            tape = self._grow(tape, index)

        flat = self._flat
        scales = np.zeros(max(1, flat.scale_slots), dtype=np.int64)
        out = bytearray()
        pending = memoryview(stdin)
        pc, pointer, total = 0, int(index), 0

        while True:
            budget = self.batch
            if self.max_steps is not None:
                budget = min(budget, self.max_steps - total)
            pc, pointer, stop, needed, steps = jit_run(
                flat.code, flat.arg, flat.slot, tape, pc, pointer, scales, budget,
            )
            total += steps
            pc, pointer = int(pc), int(pointer)

            if stop == STOP_DONE:
                return RunResult(bytes(out), tape, pointer, steps=total)
            if stop == STOP_FAULT:
                LOGGER.debug("fault at pc=%d pointer=%d", pc, pointer)
                return RunResult(bytes(out), tape, pointer, ERROR_EXIT_CODE, ERROR_MESSAGE, total)
            if stop == STOP_OUTPUT:
                byte = int(tape[pointer])
                out.append(byte)
                if on_output is not None:
                    on_output(byte)
            elif stop == STOP_INPUT:
                if len(pending):
                    tape[pointer] = pending[0]
                    pending = pending[1:]
                else:
                    tape[pointer] = 0
            elif stop == STOP_GROW:
                tape = self._grow(tape, int(needed))
            elif stop == STOP_STEPS:
                if self.max_steps is not None and total >= self.max_steps:
                    raise BFCStepLimitError(
                        message=f"ExecutionError: step limit of {self.max_steps} exceeded",
                        steps=total,
                    )

    @staticmethod
    def _grow(tape: np.ndarray, index: int) -> np.ndarray:
        grown = np.zeros(_grown_size(index), dtype=np.uint8)
        grown[:len(tape)] = tape
        return grown


def run(program: Program, stdin: bytes = b"", **kwargs) -> RunResult:
    return Interpreter(program).run(stdin, **kwargs)


def run_source(source: str, stdin: bytes = b"", optimize: bool = False) -> RunResult:
    program = parse(source)
    if optimize:
        program = optimize_program(program)
    return Interpreter(program).run(stdin)


def tape_prefix(result: RunResult, length: int) -> Tuple[int, ...]:
    """First ``length`` cells of the final tape, zero-padded."""
    cells = list(result.tape[:length])
    cells += [0] * (length - len(cells))
    return tuple(int(c) for c in cells)
