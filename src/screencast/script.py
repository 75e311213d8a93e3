"""Turn a screencast script document into an ordered list of directives.

A script is ordinary prose (usually Markdown) with fenced blocks. Only lines
inside fences are read, one directive per line::

    ```
    command echo "Hello"
    key Up Return
    sleep 1.5
    pause
    toggle
    ```

Unknown lines inside a fence are ignored, so comments can be written freely.
Interpretation never fails: payloads are checked when a directive runs.
"""

from __future__ import annotations

from typing import Iterator

from .models import Command, Directive, Key, Pause, Sleep, Toggle

FENCE = "```"


def is_fence(line: str) -> bool:
    return line.strip().startswith(FENCE)


def parse_line(line: str, number: int = 0) -> Directive | None:
    """Parse a single directive line, returning ``None`` for unrecognised text."""
    parts = line.split(None, 1)
    if not parts:
        return None
    token = parts[0]
    rest = parts[1].strip() if len(parts) > 1 else ""
    if token == "command":
        return Command(rest, line=number)
    if token == "key":
        return Key(tuple(rest.split()), line=number)
    if token == "sleep":
        return Sleep(rest, line=number)
    if token == "pause":
        return Pause(line=number)
    if token == "toggle":
        return Toggle(line=number)
    return None


def iter_directives(document: str, autopause: bool = False) -> Iterator[Directive]:
    inside_block = False
    just_entered = False
    for number, line in enumerate(document.splitlines(), start=1):
        if is_fence(line):
            inside_block = not inside_block
            just_entered = inside_block
            continue
        if not inside_block or not line.strip():
            continue
        if just_entered:
            just_entered = False
            if autopause:
                yield Pause(line=number, automatic=True)
        directive = parse_line(line, number)
        if directive is not None:
            yield directive
    # A block left open at the end of the document closes implicitly.


def interpret(document: str, autopause: bool = False) -> list[Directive]:
    """Return the directives of ``document`` in document order."""
    return list(iter_directives(document, autopause))


def describe(directive: Directive) -> str:
    """Render one directive the way it would be written in a script."""
    match directive:
        case Command(text=text):
            return f"command {text}"
        case Key(keys=keys):
            return "key " + " ".join(keys)
        case Sleep(raw=raw):
            return f"sleep {raw}"
        case Pause(automatic=True):
            return "pause (auto)"
        case Pause():
            return "pause"
        case Toggle():
            return "toggle"
    raise TypeError(f"Unknown directive {directive!r}")
