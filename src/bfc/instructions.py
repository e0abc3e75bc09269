from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Union

# ---------------- IR Nodes ----------------
# Direction lives in the class name, never in the sign of the payload.
# Byte amounts are kept in 0..255; all arithmetic on them is mod 256.


@dataclass(frozen=True)
class MoveRight:
    amount: int


@dataclass(frozen=True)
class MoveLeft:
    amount: int  # underflow below cell 0 is a runtime fault


@dataclass(frozen=True)
class Increment:
    amount: int


@dataclass(frozen=True)
class Decrement:
    amount: int


@dataclass(frozen=True)
class Output:
    pass


@dataclass(frozen=True)
class Input:
    pass


@dataclass(frozen=True)
class Loop:
    body: List["Instruction"] = field(default_factory=list)


# ---------------- Specialized nodes (produced by the optimizer) ----------------
@dataclass(frozen=True)
class MoveRightUntilZero:
    step: int


@dataclass(frozen=True)
class MoveLeftUntilZero:
    step: int


@dataclass(frozen=True)
class SetToZero:
    pass


@dataclass(frozen=True)
class WithMultiplier:
    """Run ``body`` with every Increment/Decrement scaled by the origin cell, then zero it."""
    body: List["Instruction"] = field(default_factory=list)


@dataclass(frozen=True)
class MoveValueRight:
    amount: int


@dataclass(frozen=True)
class MoveValueLeft:
    amount: int


Instruction = Union[
    MoveRight, MoveLeft, Increment, Decrement, Output, Input, Loop,
    MoveRightUntilZero, MoveLeftUntilZero, SetToZero, WithMultiplier,
    MoveValueRight, MoveValueLeft,
]
Program = List[Instruction]

INSTRUCTION_TYPES = (
    MoveRight, MoveLeft, Increment, Decrement, Output, Input, Loop,
    MoveRightUntilZero, MoveLeftUntilZero, SetToZero, WithMultiplier,
    MoveValueRight, MoveValueLeft,
)
NESTED_TYPES = (Loop, WithMultiplier)
ARITHMETIC_TYPES = (MoveRight, MoveLeft, Increment, Decrement)


# ---------------- Debug rendering ----------------
def render(nodes: Program, indent: int = 0) -> str:
    """Pretty-print a program tree, one instruction per line."""
    pad = "  " * indent
    out: List[str] = []
    for n in nodes:
        name = type(n).__name__
        if isinstance(n, NESTED_TYPES):
            out.append(f"{pad}{name}(")
            if n.body:
                out.append(render(n.body, indent + 1))
            out.append(f"{pad})")
        elif isinstance(n, (MoveRightUntilZero, MoveLeftUntilZero)):
            out.append(f"{pad}{name}({n.step})")
        elif hasattr(n, "amount"):
            out.append(f"{pad}{name}({n.amount})")
        else:
            out.append(f"{pad}{name}")
    return "\n".join(out)


def count_nodes(nodes: Program) -> int:
    """Total number of instruction nodes in the tree, nested bodies included."""
    c = 0
    for n in nodes:
        c += 1
        if isinstance(n, NESTED_TYPES):
            c += count_nodes(n.body)
    return c
