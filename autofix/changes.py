"""
Detect uncommitted working-tree changes.

`git status --porcelain` reports tracked modifications and
untracked files alike; a plain diff would miss new files
written by generators. Each line is "XY path": two status
columns, one space, and the path from offset 3. The status
columns may be spaces (" M" is an unstaged modification), so
the output is split before anything is trimmed.
"""
from __future__ import annotations

from dataclasses import dataclass
import re

from .gitutils import Executor, ProcessError, status_porcelain
from .error_model import ScanError


MIN_LINE_WIDTH = 4
PATH_OFFSET    = 3
RENAME_ARROW   = " -> "
UNTRACKED      = "??"

_C_ESCAPES: dict[str, int] = {
    "a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13,
    '"': 34, "\\": 92,
}
_OCTAL = re.compile(r"[0-7]{3}")


@dataclass(frozen=True)
class ChangeEntry:
    status: str
    path: str
    origin: str | None = None

    @property
    def is_rename(self) -> bool:
        return self.origin is not None

    def paths(self) -> tuple[str, ...]:
        if self.origin is None: return (self.path,)
        return (self.origin, self.path)

    def __str__(self) -> str:
        if self.origin is None: return printable(self.path)
        return f"{printable(self.origin)}{RENAME_ARROW}" \
               f"{printable(self.path)}"


ChangeSet = tuple[ChangeEntry, ...]


def printable(path: str) -> str:
    """Render undecodable filename bytes as U+FFFD for display."""
    raw = path.encode("utf-8", errors="surrogateescape")
    return raw.decode("utf-8", errors="replace")


def _unquote(path: str) -> str:
    """Undo git's C-style quoting of unusual paths."""
    if len(path) < 2 or path[0] != '"' or path[-1] != '"':
        return path
    body = path[1:-1]
    out  = bytearray()
    i    = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\":
            out += ch.encode("utf-8", errors="surrogateescape")
            i += 1; continue
        nxt = body[i + 1:i + 2]
        if nxt in _C_ESCAPES:
            out.append(_C_ESCAPES[nxt]); i += 2; continue
        octal = body[i + 1:i + 4]
        if _OCTAL.fullmatch(octal):
            out.append(int(octal, 8)); i += 4; continue
        out += ch.encode("utf-8", errors="surrogateescape"); i += 1
    return out.decode("utf-8", errors="surrogateescape")


def _parse_line(line: str) -> ChangeEntry:
    status = line[:2]
    rest   = line[PATH_OFFSET:]
    if status[0] in "RC" and RENAME_ARROW in rest:
        origin, path = rest.split(RENAME_ARROW, 1)
        return ChangeEntry(status, _unquote(path), _unquote(origin))
    return ChangeEntry(status, _unquote(rest))


def parse_status(output: str, include_untracked: bool = True
                ) -> ChangeSet:
    """Parse porcelain v1 output into an ordered, de-duplicated set."""
    if not output.strip(): return ()

    entries: list[ChangeEntry] = []
    for line in output.split("\n"):
        line = line.rstrip("\r")
        if len(line) < MIN_LINE_WIDTH: continue
        entry = _parse_line(line)
        if not include_untracked and entry.status == UNTRACKED:
            continue
        entries.append(entry)
    # Preserve scan order while removing duplicates.
    return tuple(dict.fromkeys(entries))


def detect(executor: Executor, cwd: str,
           include_untracked: bool = True) -> ChangeSet:
    try: output = status_porcelain(executor, cwd)
    except ProcessError as e:
        raise ScanError("run git status failed",
              output=e.output) from e
    return parse_status(output, include_untracked)
