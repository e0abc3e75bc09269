from __future__ import annotations

import logging
from typing import List, Tuple

from .errors import make_parse_error
from .instructions import (
    Decrement, Increment, Input, Loop, MoveLeft, MoveRight, Output, Program,
)
from .lexer import Token, tokenize

LOGGER = logging.getLogger("bfc.parser")

_SIMPLE = {'.': Output, ',': Input}


def _fold_run(tokens: List[Token], i: int) -> Tuple[int, int]:
    """Length of the run of identical tokens starting at ``i``."""
    kind = tokens[i].kind
    j = i
    while j < len(tokens) and tokens[j].kind == kind:
        j += 1
    return j - i, j


def parse(source: str) -> Program:
    """Parse source text into an instruction tree.

    Runs of ``>``/``<`` fold into one move; runs of ``+``/``-`` fold into one
    Increment/Decrement with the run length taken mod 256. Unbalanced
    brackets raise BFCParseError.
    """
    tokens = list(tokenize(source))
    stack: List[Tuple[Program, Token]] = []
    current: Program = []

    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.kind in '<>':
            n, i = _fold_run(tokens, i)
            current.append(MoveRight(n) if tok.kind == '>' else MoveLeft(n))
            continue
        if tok.kind in '+-':
            n, i = _fold_run(tokens, i)
            current.append(Increment(n % 256) if tok.kind == '+' else Decrement(n % 256))
            continue

        if tok.kind == '[':
            stack.append((current, tok))
            current = []
        elif tok.kind == ']':
            if not stack:
                raise make_parse_error(
                    message="unexpected loop end", source=source, line=tok.line, col=tok.col,
                )
            parent, _ = stack.pop()
            parent.append(Loop(current))
            current = parent
        else:
            current.append(_SIMPLE[tok.kind]())
        i += 1

    if stack:
        _, start = stack[-1]
        raise make_parse_error(
            message="expected loop end for start", source=source, line=start.line, col=start.col,
        )

    LOGGER.debug("parsed %d tokens into %d top-level instructions", len(tokens), len(current))
    return current
