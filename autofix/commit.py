"""Build and record the autofix commit."""
from __future__ import annotations

from collections.abc import Iterable

from .gitutils import Executor, ProcessError, commit
from .error_model import CommitError
from ._constants import SOURCE_URL
from .changes import ChangeEntry


EXPLANATION = (
    "Previous steps in this CI workflow created uncommitted file changes\n"
    "(e.g. a code formatter, linter, or code generator). This commit\n"
    "captures those changes.\n"
)


def compose(subject: str, changes: Iterable[ChangeEntry]) -> str:
    lines = [subject, "", EXPLANATION, SOURCE_URL, "",
             "Modified files:"]
    lines += [f"- {entry}" for entry in changes]
    return "\n".join(lines) + "\n"


def commit_all(executor: Executor, cwd: str, message: str) -> None:
    """Commit the staged index as the bot."""
    try: commit(executor, cwd, message)
    except ProcessError as e:
        raise CommitError("git commit failed", output=e.output) from e
