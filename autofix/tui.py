"""Live stage board shown while a run is attached to a terminal."""
from __future__ import annotations

# ======================= STANDARDS =======================
from dataclasses import dataclass, field
from contextlib import contextmanager
from collections.abc import Iterator
from enum import Enum

# ==================== THIRD-PARTIES ======================
from rich.console import Console, Group, RenderableType
from rich.spinner import Spinner
from rich.table import Table
from rich.live import Live
from rich.text import Text

# ======================== LOCALS =========================
from . import _constants as const
from . import utils


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE    = "done"
    SKIPPED = "skipped"
    FAIL    = "fail"


# status -> (glyph, style)
_MARKS: dict[StageStatus, tuple[str, str]] = {
    StageStatus.PENDING: ("○", "dim"),
    StageStatus.DONE:    ("✔", "green"),
    StageStatus.SKIPPED: ("↷", "cyan"),
    StageStatus.FAIL:    ("✖", "red"),
}


@dataclass
class _Stage:
    label: str
    status: StageStatus = StageStatus.PENDING
    notes: list[tuple[str, str]] = field(default_factory=list)


class StageBoard:
    """
    One row per stage; messages sent while a stage runs are
    listed under it. Disabled boards print messages directly.
    """

    def __init__(self, labels: list[str], enabled: bool) -> None:
        self.enabled = enabled
        self.stages  = [_Stage(label) for label in labels]
        self._live: Live | None = None

    def add_message(self, idx: int | None, msg: str,
                    fg: str = const.PROMPT, prfx: bool = True
                   ) -> None:
        if self._live is None or idx is None:
            line = utils.color(utils.wrap(msg) if prfx else msg, fg)
            print(f"{const.AUTOFIX}{line}" if prfx else line)
            return
        self.stages[idx].notes.append((msg, fg))
        self._live.update(self._render())

    def start(self, idx: int) -> None:
        self._mark(idx, StageStatus.RUNNING)

    def finish(self, idx: int, result: utils.StepResult) -> None:
        if result is utils.StepResult.OK: status = StageStatus.DONE
        elif result is utils.StepResult.DONE:
            status = StageStatus.SKIPPED
        else: status = StageStatus.FAIL
        self._mark(idx, status)

    def _mark(self, idx: int, status: StageStatus) -> None:
        self.stages[idx].status = status
        if self._live: self._live.update(self._render())

    def _render(self) -> Table:
        grid = Table.grid(padding=(0, 1))
        grid.add_column(width=2)
        grid.add_column()
        for stage in self.stages:
            grid.add_row(self._mark_cell(stage.status),
                         self._body(stage))
        return grid

    @staticmethod
    def _mark_cell(status: StageStatus) -> RenderableType:
        if status is StageStatus.RUNNING: return Spinner("dots")
        glyph, style = _MARKS[status]
        return Text(glyph, style=style)

    @staticmethod
    def _body(stage: _Stage) -> RenderableType:
        title = Text(stage.label, style="bold"
                if stage.status is StageStatus.RUNNING else "")
        if not stage.notes: return title
        notes = [Text.assemble((f"{const.APP} ", "magenta"),
                 (msg, fg)) for msg, fg in stage.notes]
        return Group(title, *notes)


@contextmanager
def tui_runner(labels: list[str], enabled: bool
              ) -> Iterator[StageBoard]:
    board = StageBoard(labels, enabled)
    if not enabled:
        yield board
        return
    live = Live(board._render(), console=Console(stderr=True),
           refresh_per_second=10, transient=False)
    with live:
        board._live = live
        utils.bind_console(board)
        try: yield board
        finally:
            utils.bind_console(None)
            board._live = None
