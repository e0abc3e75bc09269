#!/usr/bin/env python3
# optimizer.py
#
# Loop-idiom optimizer for the instruction tree.
#
#   - single-instruction loops: [>] / [<] become scans, [-] / [+] become SetToZero
#   - linear loops (Move/Add only, net pointer 0, origin delta exactly -1 mod 256)
#     are unrolled into SetToZero, MoveValueRight/Left or a WithMultiplier block
#
# Assumptions:
#   - Cells are 8-bit and wrap (all deltas are kept mod 256).
#   - Input is well bracketed; the parser guarantees it.
#
# NOTE: nodes are never mutated; every rewrite builds new nodes.
#
from __future__ import annotations

import logging
from typing import Dict, Optional

from .instructions import (
    INSTRUCTION_TYPES, Decrement, Increment, Instruction, Loop,
    MoveLeft, MoveLeftUntilZero, MoveRight, MoveRightUntilZero, MoveValueLeft,
    MoveValueRight, Program, SetToZero, WithMultiplier, count_nodes,
)

LOGGER = logging.getLogger("bfc.optimizer")

CELL_SIZE = 256
MINUS_ONE = CELL_SIZE - 1

# ---------------- Single-instruction loops ----------------
def rewrite_single(body: Program) -> Optional[Instruction]:
    """Fixed substitution table for one-instruction loop bodies."""
    n = body[0]
    if isinstance(n, MoveRight):
        return MoveRightUntilZero(n.amount)
    if isinstance(n, MoveLeft):
        return MoveLeftUntilZero(n.amount)
    if isinstance(n, (Increment, Decrement)) and n.amount == 1:
        return SetToZero()
    return None

# ---------------- Linear loop analysis ----------------
def analyze_linear_loop(body: Program) -> Optional[Dict[int, int]]:
    """
    If the loop body consists only of moves and Increment/Decrement, and the
    net pointer shift is 0, return the per-iteration delta map:
    offset -> delta mod 256 (relative to the loop entry pointer).
    Otherwise None.
    """
    p = 0
    delta: Dict[int, int] = {}
    for n in body:
        if isinstance(n, MoveRight):
            p += n.amount
        elif isinstance(n, MoveLeft):
            p -= n.amount
        elif isinstance(n, Increment):
            delta[p] = (delta.get(p, 0) + n.amount) % CELL_SIZE
        elif isinstance(n, Decrement):
            delta[p] = (delta.get(p, 0) - n.amount) % CELL_SIZE
        else:
            return None
    if p != 0:
        return None
    return delta


def _move(distance: int) -> Instruction:
    return MoveRight(distance) if distance > 0 else MoveLeft(-distance)


def _add(delta: int) -> Instruction:
    # shorter of the two encodings; both are equal mod 256 once scaled
    if delta <= CELL_SIZE - delta:
        return Increment(delta)
    return Decrement(CELL_SIZE - delta)


def emit_multiplied_body(other: Dict[int, int]) -> Program:
    """
    Visit touched offsets in ascending order, applying each delta, then return
    to offset 0. Sorting keeps the generated code reproducible.
    """
    out: Program = []
    cur = 0
    for off in sorted(other):
        if off != cur:
            out.append(_move(off - cur))
            cur = off
        out.append(_add(other[off]))
    if cur != 0:
        out.append(_move(-cur))
    return out


def unroll_linear_loop(body: Program) -> Optional[Instruction]:
    """Replace a loop that runs exactly ``cell`` times with straight-line code."""
    delta = analyze_linear_loop(body)
    if delta is None or delta.get(0, 0) != MINUS_ONE:
        return None

    other = {k: v for k, v in delta.items() if k != 0 and v != 0}
    if not other:
        return SetToZero()

    if len(other) == 1:
        (off, d), = other.items()
        if d == 1:
            return MoveValueRight(off) if off > 0 else MoveValueLeft(-off)

    return WithMultiplier(emit_multiplied_body(other))

# ---------------- Main optimizer pipeline ----------------
def optimize_nodes(nodes: Program) -> Program:
    # recurse into bodies first so nested idioms are normalized bottom-up
    out: Program = []
    for n in nodes:
        if not isinstance(n, INSTRUCTION_TYPES):
            raise TypeError(f"not an instruction: {n!r}")

        if isinstance(n, WithMultiplier):
            out.append(WithMultiplier(optimize_nodes(n.body)))
            continue
        if not isinstance(n, Loop):
            out.append(n)
            continue

        body = optimize_nodes(n.body)

        if len(body) == 1:
            single = rewrite_single(body)
            out.append(single if single is not None else Loop(body))
            continue

        unrolled = unroll_linear_loop(body)
        if unrolled is not None:
            LOGGER.debug("unrolled %d-instruction loop into %s", len(body), type(unrolled).__name__)
            out.append(unrolled)
            continue

        out.append(Loop(body))
    return out


def optimize(program: Program) -> Program:
    """Return a new, semantically equivalent program with loop idioms rewritten."""
    optimized = optimize_nodes(program)
    LOGGER.debug("optimized %d nodes into %d", count_nodes(program), count_nodes(optimized))
    return optimized