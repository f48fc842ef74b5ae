"""User-facing output: styled, wrapped and routed to the live board."""
# ======================= STANDARDS ========================
from enum import Enum, auto as auto_enum
from dataclasses import dataclass
from typing import Protocol
import shutil

# ===================== THIRD-PARTIES ======================
from tuikit.textools import wrap_text, style_text as color
from tuikit.textools import transmit as _transmit, pathit

# ======================== LOCALS ==========================
from . import _constants as const

__all__ = [
    "Output",
    "StepResult",
    "bind_console",
    "bullets",
    "color",
    "command_exists",
    "pathit",
    "wrap",
]


class StepResult(Enum):
    OK    = auto_enum()  # continue with the next stage
    DONE  = auto_enum()  # run finished early, nothing failed
    FAIL  = auto_enum()


class MessageSink(Protocol):
    def add_message(self, idx: int | None, msg: str,
                    fg: str = const.PROMPT, prfx: bool = True
                   ) -> None: ...


# set while a live board owns the terminal
_sink: MessageSink | None = None


def bind_console(sink: MessageSink | None) -> None:
    global _sink
    _sink = sink


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def wrap(text: str) -> str:
    return wrap_text(text, const.I, inline=True, order=const.APP)


def bullets(items: list[str], marker: str = "      -") -> str:
    """Render `items` as an indented list, one wrapped item per line."""
    indent = len(marker) + 2
    return "".join(f"{marker} " + wrap_text(f"{item}\n", indent,
                   inline=True, order=marker) for item in items)


def _emit(msg: str, fg: str, prefix: bool = True,
          step_idx: int | None = None) -> None:
    if _sink is not None:
        _sink.add_message(step_idx, msg, fg=fg, prfx=prefix)
        return
    if prefix: print(const.AUTOFIX, end="")
    _transmit(msg, speed=const.SPEED, hold=const.HOLD, hue=fg)


@dataclass
class Output:
    """Quiet mode mutes everything except warnings."""
    quiet: bool = False

    def success(self, msg: str, step_idx: int | None = None
               ) -> None:
        if self.quiet: return
        _emit(msg if _sink else wrap(msg), const.GOOD,
              step_idx=step_idx)

    def info(self, msg: str, step_idx: int | None = None) -> None:
        if self.quiet: return
        _emit(wrap(msg) if const.PLAIN else msg, const.INFO,
              step_idx=step_idx)

    def warn(self, msg: str, step_idx: int | None = None) -> None:
        _emit(msg if _sink else wrap(msg), const.BAD,
              step_idx=step_idx)

    def raw(self, *args: object, **kwargs: object) -> None:
        if not self.quiet: print(*args, **kwargs)  # type: ignore[call-overload]
