"""Export run results back to the CI platform."""
from __future__ import annotations

from typing import TYPE_CHECKING

from .gitutils import Executor, ProcessError, SubprocessExecutor
from .utils import command_exists

if TYPE_CHECKING:
    from .workflow_engine import RunResult


EXPORTER = "envman"


def _bool(value: bool) -> str:
    return "true" if value else "false"


def output_values(result: "RunResult") -> dict[str, str]:
    return {
        "AUTOFIX_NEEDED": _bool(result.autofix_needed),
        "AUTOFIX_PUSHED": _bool(result.autofix_pushed),
        "AUTOFIX_FILE_COUNT": str(result.file_count),
    }


def export_outputs(result: "RunResult",
                   executor: Executor | None = None) -> list[str]:
    """
    Export result fields with `envman add`.

    Returns the exported keys. Raises RuntimeError naming the
    first key that failed; a missing exporter is not an error,
    nothing is exported then.
    """
    if executor is None:
        if not command_exists(EXPORTER): return []
        executor = SubprocessExecutor()

    exported: list[str] = []
    for key, value in output_values(result).items():
        try:
            executor.execute(EXPORTER, ["add", "--key", key,
                "--value", value])
        except ProcessError as e:
            raise RuntimeError(f"export {key}: {e.output or e}") from e
        exported.append(key)
    return exported
