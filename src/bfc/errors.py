from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence


def _build_context(lines: List[str], line_no_1: int, *, context: int = 2) -> str:
    idx = max(1, line_no_1)
    start = max(1, idx - context)
    end = min(len(lines), idx + context)

    out: List[str] = []
    for i in range(start, end + 1):
        prefix = '>' if i == idx else ' '
        out.append(f"{prefix} {i:4d} | {lines[i - 1]}")
    return "\n".join(out)


def _hint_for(message: str, *, kind: str) -> Optional[str]:
    msg = message.lower()
    if kind == 'parse':
        if 'unexpected loop end' in msg:
            return 'This "]" has no matching "[" before it.'
        if 'expected loop end' in msg:
            return 'Add a closing "]" for this "[" (brackets must nest).'
        return None
    if kind == 'link':
        if 'not found' in msg or 'no such file' in msg:
            return 'Install a C compiler or point --cc / $BFC_CC at one.'
        return None
    return None


@dataclass
class BFCError(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class BFCParseError(BFCError):
    line: int
    col: int
    context: str


@dataclass
class BFCCodegenError(BFCError):
    pass


@dataclass
class BFCLinkError(BFCError):
    command: List[str] = field(default_factory=list)
    stderr: str = ""


@dataclass
class BFCStepLimitError(BFCError):
    steps: int = 0


def make_parse_error(*, message: str, source: str, line: int, col: int) -> BFCParseError:
    lines = source.split('\n')
    ctx = _build_context(lines, line)
    hint = _hint_for(message, kind='parse')
    hint_block = f"\nHint: {hint}" if hint else ""
    return BFCParseError(
        message=f"ParseError: {message} at {line}:{col}\n{ctx}{hint_block}",
        line=line,
        col=col,
        context=ctx,
    )


def make_link_error(*, message: str, command: Sequence[str], stderr: str = "") -> BFCLinkError:
    hint = _hint_for(message, kind='link')
    hint_block = f"\nHint: {hint}" if hint else ""
    detail = f"\n{stderr.rstrip()}" if stderr.strip() else ""
    return BFCLinkError(
        message=f"LinkError: {message}: {' '.join(command)}{detail}{hint_block}",
        command=list(command),
        stderr=stderr,
    )
