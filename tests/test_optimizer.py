#!/usr/bin/env python3
"""
Loop idiom rewrites.
"""

import pytest

from bfc.instructions import (
    Decrement, Increment, Input, Loop, MoveLeft, MoveLeftUntilZero, MoveRight,
    MoveRightUntilZero, MoveValueLeft, MoveValueRight, Output, SetToZero,
    WithMultiplier,
)
from bfc.optimizer import analyze_linear_loop, optimize
from bfc.parser import parse

PROGRAMS = [
    "",
    "+++.",
    "[-]",
    "[>]<[<]",
    "[->+<]",
    "[->++>+++<<]",
    "[>>+<<<+>-]",
    "[-.>+<]",
    "[>[->+<]<-]",
    "[[-]>]",
    "++++++++[>++++[>++>+++>+++>+<<<<-]>+>+>->>+[<]<-]>>.>---.+++++++..+++.>>.<-.<.+++.------.--------.>>+.>++.",
    ",----------[++++++++++.,----------]",
]


@pytest.mark.parametrize("body,expected", [
    ([MoveRight(2)], MoveRightUntilZero(2)),
    ([MoveLeft(3)], MoveLeftUntilZero(3)),
    ([Increment(1)], SetToZero()),
    ([Decrement(1)], SetToZero()),
])
def test_single_instruction_table(body, expected):
    assert optimize([Loop(body)]) == [expected]


@pytest.mark.parametrize("body", [
    [Decrement(2)],
    [Increment(255)],
    [Output()],
    [Input()],
    [Loop([Output()])],
])
def test_other_single_instruction_loops_are_kept(body):
    assert optimize([Loop(body)]) == [Loop(body)]


def test_clear_loops_from_source():
    assert optimize(parse("[-]")) == [SetToZero()]
    assert optimize(parse("[+]")) == [SetToZero()]


def test_move_value_right_and_left():
    assert optimize(parse("[->+<]")) == [MoveValueRight(1)]
    assert optimize(parse("[>+<-]")) == [MoveValueRight(1)]
    assert optimize(parse("[-<<+>>]")) == [MoveValueLeft(2)]


def test_unroll_without_other_offsets_clears():
    # offset 1 is touched but nets to zero
    assert optimize(parse("[->+-<]")) == [SetToZero()]


def test_multiplier_loop():
    assert optimize(parse("[->++>+++<<]")) == [
        WithMultiplier([MoveRight(1), Increment(2), MoveRight(1), Increment(3), MoveLeft(2)]),
    ]


def test_multiplier_visits_offsets_in_ascending_order():
    assert optimize(parse("[>>+<<<+>-]")) == [
        WithMultiplier([MoveLeft(1), Increment(1), MoveRight(3), Increment(1), MoveLeft(2)]),
    ]


def test_single_offset_with_factor_uses_multiplier():
    assert optimize(parse("[->---<]")) == [
        WithMultiplier([MoveRight(1), Decrement(3), MoveLeft(1)]),
    ]


@pytest.mark.parametrize("source", [
    "[->+<<]",    # pointer drifts
    "[-->+<]",    # origin changes by -2
    "[+>+<]",     # origin changes by +1
    "[-.>+<]",    # output
    "[-,>+<]",    # input
])
def test_non_unrollable_loops_are_kept(source):
    program = parse(source)
    assert optimize(program) == program


def test_nested_idioms_are_rewritten_first():
    assert optimize(parse("[>[->+<]<-]")) == [
        Loop([MoveRight(1), MoveValueRight(1), MoveLeft(1), Decrement(1)]),
    ]
    assert optimize(parse("[[-]>]")) == [Loop([SetToZero(), MoveRight(1)])]
    assert optimize(parse("[[-]]")) == [Loop([SetToZero()])]


def test_with_multiplier_bodies_are_left_alone():
    node = WithMultiplier([MoveRight(1), Increment(2), MoveLeft(1)])
    assert optimize([node]) == [node]


def test_analyze_linear_loop():
    assert analyze_linear_loop(parse("->++<<+++>")) == {0: 255, 1: 2, -1: 3}
    assert analyze_linear_loop(parse("->")) is None
    assert analyze_linear_loop([Output()]) is None


@pytest.mark.parametrize("source", PROGRAMS)
def test_idempotent(source):
    once = optimize(parse(source))
    assert optimize(once) == once


@pytest.mark.parametrize("source", PROGRAMS)
def test_input_tree_is_not_mutated(source):
    program = parse(source)
    optimize(program)
    assert program == parse(source)


def test_deterministic():
    source = PROGRAMS[-2]
    assert optimize(parse(source)) == optimize(parse(source))


def test_rejects_foreign_nodes():
    with pytest.raises(TypeError):
        optimize([Increment(1), "+"])
