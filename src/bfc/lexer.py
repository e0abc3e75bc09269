from dataclasses import dataclass
from typing import Iterator

COMMANDS = frozenset('><+-.,[]')


@dataclass(frozen=True)
class Token:
    kind: str  # one of COMMANDS
    line: int
    col: int


def tokenize(code: str) -> Iterator[Token]:
    """Yield command tokens with 1-based line/column positions.

    Every other character is a comment, but still advances the column so
    that positions point at the original source.
    """
    line, col = 1, 1
    for ch in code:
        if ch in COMMANDS:
            yield Token(ch, line, col)
        if ch == '\n':
            line += 1
            col = 1
        else:
            col += 1
