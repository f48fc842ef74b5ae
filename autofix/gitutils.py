"""
Small helpers for interacting with git. All operations use
the git CLI via an executor.

The executor is the only place a subprocess is started, so
tests can hand the helpers a recording substitute instead of
a real git. Helpers raise ProcessError on non-zero exits;
callers translate that into the failure of their own phase.
"""
# ======================= STANDARDS =======================
from typing import Protocol
from pathlib import Path
import logging as log
import subprocess
import sys
import os

# ======================== LOCALS =========================
from ._constants import BOT_NAME, BOT_EMAIL, REMOTE


# Configure module logger
logger = log.getLogger("autofix.git")
logger.setLevel(log.DEBUG)
def configure_logger(log_dir: Path | None, verbose: bool = False
                    ) -> None:
    """Configure git logger once per process."""
    if logger.handlers: return
    if log_dir is not None:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = log.FileHandler(str(Path(log_dir) / "debug.log"),
                       errors="backslashreplace")
        fmt          = log.Formatter("%(asctime)s - %(levelname)s"
                     + " - %(message)s")
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)
    if verbose:
        stream = log.StreamHandler(sys.stderr)
        stream.setFormatter(log.Formatter("%(message)s"))
        logger.addHandler(stream)
    if not logger.handlers: logger.addHandler(log.NullHandler())


class ProcessError(RuntimeError):
    """An external command could not run or exited non-zero."""

    def __init__(self, name: str, args: list[str],
                 returncode: int, output: str) -> None:
        self.name       = name
        self.args_      = list(args)
        self.returncode = returncode
        self.output     = output
        super().__init__(f"{name} {_printable(args)} exited "
            f"with code {returncode}")


class Executor(Protocol):
    def execute(self, name: str, args: list[str],
                cwd: str | None = None,
                env: dict[str, str] | None = None,
                raw: bool = False) -> str: ...


def _printable(args: list[str]) -> str:
    """Render args for logs with credential helper paths masked."""
    shown = []
    for arg in args:
        if arg.startswith("credential.helper=") and arg != "credential.helper=":
            arg = "credential.helper=***"
        shown.append(arg)
    return " ".join(shown)


class SubprocessExecutor:
    """Run commands with subprocess, one blocking call each."""

    def execute(self, name: str, args: list[str],
                cwd: str | None = None,
                env: dict[str, str] | None = None,
                raw: bool = False) -> str:
        """
        Run `name args` and return its output.

        `raw` returns stdout untouched; otherwise stdout and
        stderr are combined and stripped. `env` entries are
        added on top of the current environment for this one
        process only.
        """
        logger.debug("$ %s %s", name, _printable(args))
        full_env = {**os.environ, **env} if env else None
        try:
            proc = subprocess.run(
                [name, *args],
                cwd=cwd,
                env=full_env,
                text=True,
                encoding="utf-8",
                errors="surrogateescape",
                capture_output=True,
                check=False,
            )
        except OSError as e:
            raise ProcessError(name, args, 127, str(e)) from e

        stdout = proc.stdout or ""
        stderr = proc.stderr or ""
        parts  = [p.strip() for p in (stdout, stderr) if p.strip()]
        out    = "\n".join(parts)
        if out: logger.debug("%s", out)
        if proc.returncode != 0:
            raise ProcessError(name, args, proc.returncode, out)
        return stdout if raw else out


def git(executor: Executor, cwd: str, args: list[str],
        env: dict[str, str] | None = None, raw: bool = False
       ) -> str:
    return executor.execute("git", args, cwd=cwd, env=env,
           raw=raw)


def identity_options() -> list[str]:
    """Per-invocation bot identity; never written to config."""
    return ["-c", f"user.name={BOT_NAME}",
            "-c", f"user.email={BOT_EMAIL}"]


def status_porcelain(executor: Executor, cwd: str) -> str:
    return git(executor, cwd, ["-c", "core.quotePath=false",
           "status", "--porcelain", "--untracked-files=all"], raw=True)


def stage_all(executor: Executor, cwd: str,
              include_untracked: bool = True) -> None:
    """`--update` leaves untracked files out of the index."""
    git(executor, cwd, ["add", "--all" if include_untracked
        else "--update"])


def commit(executor: Executor, cwd: str, message: str,
           no_verify: bool = False) -> None:
    args = identity_options() + ["commit", "-m", message]
    if no_verify: args.append("--no-verify")
    git(executor, cwd, args)


def rev_parse(executor: Executor, cwd: str, ref: str = "HEAD"
             ) -> str:
    return git(executor, cwd, ["rev-parse", ref]).strip()


def fetch_branch(executor: Executor, cwd: str, branch: str,
                 options: list[str],
                 env: dict[str, str] | None = None) -> None:
    refspec = f"+refs/heads/{branch}:refs/remotes/{REMOTE}/{branch}"
    git(executor, cwd, [*options, "fetch", "--depth", "1",
        REMOTE, refspec], env=env)


def checkout_reset(executor: Executor, cwd: str, branch: str
                  ) -> None:
    git(executor, cwd, ["checkout", "-B", branch,
        f"{REMOTE}/{branch}"])


def cherry_pick_no_commit(executor: Executor, cwd: str,
                          rev: str) -> None:
    git(executor, cwd, ["cherry-pick", "--no-commit", rev])


def abort_cherry_pick(executor: Executor, cwd: str) -> None:
    """Abort a replay; `--no-commit` picks may leave no sequencer."""
    try: git(executor, cwd, ["cherry-pick", "--abort"])
    except ProcessError as e:
        logger.debug("cherry-pick --abort failed (%s), "
            "resetting merge state", e.returncode)
        git(executor, cwd, ["reset", "--merge"])


def has_staged_changes(executor: Executor, cwd: str) -> bool:
    try: git(executor, cwd, ["diff", "--cached", "--quiet"])
    except ProcessError as e:
        if e.returncode == 1: return True
        raise
    return False


def push_head(executor: Executor, cwd: str, branch: str,
              options: list[str],
              env: dict[str, str] | None = None) -> None:
    git(executor, cwd, [*options, "push", REMOTE,
        f"HEAD:{branch}"], env=env)
