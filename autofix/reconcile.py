"""
Anchor the autofix on the real remote branch tip.

PR builds often check out a synthetic merge ref, a shallow
clone or a local merge commit that was never pushed. Pushing
that HEAD to the PR branch would either be rejected as a
non-fast-forward or drag base-branch commits into the PR.

The engine snapshots the autofix delta as a temporary commit
on whatever HEAD the checkout produced, resets a local branch
to the fetched remote tip, and replays the snapshot there
without committing. The working tree is then clean except
for the staged delta, ready for the final commit.
"""
from __future__ import annotations

import re

from .error_model import FetchFailed, ReconciliationError, ReplayConflict
from .credential import Credential, scoped_helper
from .gitutils import Executor, ProcessError, logger
from ._constants import REMOTE
from .changes import ChangeSet
from . import gitutils


TEMP_COMMIT_MESSAGE = "autofix: temporary snapshot (not for push)"

# git's own line markers, never a path that mentions a conflict
_CONFLICT = re.compile(r"^(?:CONFLICT \(|error: could not apply )",
                       re.MULTILINE)


def is_conflict(output: str) -> bool:
    return bool(_CONFLICT.search(output))


def snapshot(executor: Executor, cwd: str,
             include_untracked: bool = True) -> str:
    """Commit the detected changes and return the commit id."""
    try:
        gitutils.stage_all(executor, cwd, include_untracked)
        gitutils.commit(executor, cwd, TEMP_COMMIT_MESSAGE,
            no_verify=True)
        return gitutils.rev_parse(executor, cwd, "HEAD")
    except ProcessError as e:
        raise ReconciliationError("could not snapshot autofix "
              "changes", output=e.output) from e


def fetch_tip(executor: Executor, cwd: str, branch: str,
              credential: Credential) -> None:
    # Scoped credentials so the fetch never depends on whatever
    # an earlier step left behind (.netrc, cached helpers).
    with scoped_helper(credential) as helper:
        try:
            gitutils.fetch_branch(executor, cwd, branch,
                helper.git_options(), env=helper.env)
        except ProcessError as e:
            raise FetchFailed(f"could not fetch {REMOTE}/{branch}",
                  output=e.output) from e


def replay(executor: Executor, cwd: str, rev: str) -> None:
    try: gitutils.cherry_pick_no_commit(executor, cwd, rev)
    except ProcessError as e:
        if not is_conflict(e.output):
            raise ReconciliationError("could not replay autofix "
                  "changes", output=e.output) from e
        logger.debug("replay conflicted, aborting")
        try: gitutils.abort_cherry_pick(executor, cwd)
        except ProcessError as abort_err:
            logger.debug("abort failed: %s", abort_err.output)
        raise ReplayConflict(
            "autofix changes conflict with the target branch",
            output=e.output,
            remediation="Run the fixing tools locally on the PR "
                "branch and push the result.") from e


def reconcile(executor: Executor, cwd: str, branch: str,
              credential: Credential, changes: ChangeSet,
              include_untracked: bool = True) -> None:
    """
    Stage the autofix delta on top of `origin/<branch>`.

    On success the checked-out branch is `branch`, its HEAD
    is the fetched remote tip and the index holds exactly the
    autofix delta. The temporary commit is left unreachable.
    Untracked files stay out of the delta unless
    `include_untracked` is set.

    Raises:
        ValueError: `changes` is empty.
        FetchFailed: the branch tip could not be fetched.
        ReplayConflict: the delta conflicts with the tip; the
            replay has been aborted.
        ReconciliationError: any other git failure.
    """
    if not changes:
        raise ValueError("reconcile requires detected changes")

    temp = snapshot(executor, cwd, include_untracked)
    logger.debug("temporary snapshot: %s", temp)

    fetch_tip(executor, cwd, branch, credential)

    try: gitutils.checkout_reset(executor, cwd, branch)
    except ProcessError as e:
        raise ReconciliationError(f"could not check out {branch}",
              output=e.output) from e

    replay(executor, cwd, temp)

    try: staged = gitutils.has_staged_changes(executor, cwd)
    except ProcessError as e:
        raise ReconciliationError("could not inspect staged "
              "changes", output=e.output) from e
    if not staged:
        raise ReconciliationError(
            f"autofix changes are already present on {branch}; "
            "nothing left to commit")
