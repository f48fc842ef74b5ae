"""Workflow orchestration engine for autofix."""


from dataclasses import dataclass
from typing import Any
import argparse
import sys
import os

from .error_model import (
    AutofixError,
    ConfigurationError,
    FailureEvent,
    error_policy_for,
    resolve_failure_code,
)
from .gitutils import Executor, SubprocessExecutor
from .context import BuildContext, read_build_context
from .credential import Credential
from .changes import ChangeSet
from . import _constants as const
from .tui import tui_runner
from . import reconcile as reconciler
from . import security
from . import telemetry
from . import changes as detector
from . import commit as composer
from . import push as pusher
from . import utils


@dataclass
class RunResult:
    autofix_needed: bool = False
    autofix_pushed: bool = False
    file_count: int = 0
    dry_run: bool = False


class Orchestrator:
    """
    Main orchestrator for one autofix run.

    Walks the stages in order, each a potential exit:
      - Validate inputs (a token is required)
      - Skip builds that are not pull requests
      - Skip pull requests opened from forks
      - Detect working-tree changes, skip when there are none
      - Refuse changes that touch CI configuration
      - Reconcile the checkout with the remote branch tip
      - Commit the autofix as the bot
      - Push it, unless running in dry-run mode

    A stage returns a message and a `StepResult`; DONE ends
    the run successfully, OK moves on. Failures are raised as
    `AutofixError` and turned into the returned error, next
    to the best-known partial result.
    """

    def __init__(self, args: argparse.Namespace,
                 context: BuildContext | None = None,
                 executor: Executor | None = None):
        self.args: argparse.Namespace = args
        const.sync_runtime_flags(self.args)

        self.path     = os.path.abspath(getattr(args, "path", "."))
        self.out      = utils.Output(quiet=bool(getattr(args,
                        "quiet", False)))
        self.context  = context or read_build_context()
        self.executor = executor or SubprocessExecutor()
        self.dry_run  = bool(getattr(args, "dry_run", False))

        self.result: RunResult = RunResult(dry_run=self.dry_run)
        self.credential: Credential | None = None
        self.changes: ChangeSet = ()
        self.failure_hint: FailureEvent | None = None

    def _set_failure_hint(self, step: str, label: str,
                          error: AutofixError) -> None:
        code = resolve_failure_code(step=step,
               preferred_code=error.code)
        policy = error_policy_for(code)
        self.failure_hint = FailureEvent(
            step=step,
            label=label,
            message=error.message,
            code=code,
            severity=policy["severity"],
            category=policy["category"],
        )

    # ---------- Workflow Plan ----------
    def _workflow_plan(self) -> tuple[list[Any], list[str], list[str]]:
        steps = [
            self.validate_input,
            self.check_pr_build,
            self.check_fork,
            self.detect_changes,
            self.check_security,
            self.reconcile,
            self.commit,
            self.push,
        ]
        labels = [
            "Validate inputs",
            "Check pull request build",
            "Check fork",
            "Detect changes",
            "Check CI configuration",
            "Reconcile with remote branch",
            "Commit autofix",
            "Push autofix",
        ]
        keys = [
            "input",
            "pr_build",
            "fork",
            "detect",
            "security",
            "reconcile",
            "commit",
            "push",
        ]
        return steps, labels, keys

    # ---------- Orchestration ----------
    def orchestrate(self) -> tuple[RunResult, AutofixError | None]:
        """
        Run every stage until one ends the run.

        Returns:
            tuple[RunResult, AutofixError | None]: The result,
            always populated as far as the run got, and the
            error that stopped it, if any.
        """
        steps, labels, keys = self._workflow_plan()

        use_ui = bool(not const.PLAIN and not const.QUIET
             and sys.stdout.isatty())

        with tui_runner(labels, enabled=use_ui) as ui:
            for i, step in enumerate(steps):
                ui.start(i)
                try: msg, result = step(step_idx=i)
                except AutofixError as e:
                    ui.finish(i, utils.StepResult.FAIL)
                    self._set_failure_hint(keys[i], labels[i], e)
                    telemetry.record("stage_failed", keys[i],
                        code=e.code, message=e.message,
                        output=e.output)
                    return self.result, e
                ui.finish(i, result)
                telemetry.record("stage_finished", keys[i],
                    result=result.name.lower())
                if msg: self.out.success(msg, step_idx=i)
                if result is utils.StepResult.DONE: break

        return self.result, None

    # ---------- Stage: Inputs ----------
    def validate_input(self, step_idx: int | None = None
                      ) -> tuple[str | None, utils.StepResult]:
        """
        Resolve the push credential from configuration.

        Username is optional; GitHub App installations only
        provide a short-lived token.
        """
        token = (getattr(self.args, "git_token", None) or "").strip()
        if not token:
            raise ConfigurationError("git token is required: set the "
                  "git_token input or make GIT_HTTP_PASSWORD "
                  "available in the environment")
        telemetry.register_secret(token)
        username = getattr(self.args, "git_username", None) or ""
        self.credential = Credential(username=username.strip(),
                          token=token)

        shown = {
            "git_username": "<set>" if username else "<empty>",
            "git_token": "***",
            "commit_subject": self.args.commit_subject,
            "dry_run": self.dry_run,
            "include_untracked": self.args.include_untracked,
        }
        self.out.info("inputs:\n" + utils.bullets([f"{k}: {v}"
            for k, v in shown.items()]), step_idx=step_idx)
        return None, utils.StepResult.OK

    # ---------- Stage: PR build ----------
    def check_pr_build(self, step_idx: int | None = None
                      ) -> tuple[str | None, utils.StepResult]:
        if not self.context.is_pr_build:
            return "skipping: not a pull request build", \
                   utils.StepResult.DONE
        return None, utils.StepResult.OK

    # ---------- Stage: Fork ----------
    def check_fork(self, step_idx: int | None = None
                  ) -> tuple[str | None, utils.StepResult]:
        if self.context.is_fork_pr:
            return "skipping: this build is for a fork PR; " \
                   "autofix cannot push to a forked repository", \
                   utils.StepResult.DONE
        return None, utils.StepResult.OK

    # ---------- Stage: Detect ----------
    def detect_changes(self, step_idx: int | None = None
                      ) -> tuple[str | None, utils.StepResult]:
        self.changes = detector.detect(self.executor, self.path,
                       include_untracked=bool(
                       self.args.include_untracked))
        if not self.changes:
            return "no changes detected, nothing to commit", \
                   utils.StepResult.DONE

        self.result.autofix_needed = True
        self.result.file_count     = len(self.changes)
        self.out.info(f"detected {len(self.changes)} changed "
            "file(s):\n" + utils.bullets([str(c) for c in
            self.changes]), step_idx=step_idx)
        return None, utils.StepResult.OK

    # ---------- Stage: Security ----------
    def check_security(self, step_idx: int | None = None
                      ) -> tuple[str | None, utils.StepResult]:
        security.check(self.changes)
        return None, utils.StepResult.OK

    # ---------- Stage: Reconcile ----------
    def reconcile(self, step_idx: int | None = None
                 ) -> tuple[str | None, utils.StepResult]:
        branch = self.context.branch
        if not branch:
            raise ConfigurationError("could not determine push target "
                  "branch: BITRISE_GIT_BRANCH is empty")
        assert self.credential is not None

        self.out.info(f"anchoring changes on {const.REMOTE}/{branch}",
            step_idx=step_idx)
        reconciler.reconcile(self.executor, self.path, branch,
            self.credential, self.changes,
            include_untracked=bool(self.args.include_untracked))
        return None, utils.StepResult.OK

    # ---------- Stage: Commit ----------
    def commit(self, step_idx: int | None = None
              ) -> tuple[str | None, utils.StepResult]:
        message = composer.compose(self.args.commit_subject,
                  self.changes)
        composer.commit_all(self.executor, self.path, message)
        return f"committed autofix on {self.context.branch}", \
               utils.StepResult.OK

    # ---------- Stage: Push ----------
    def push(self, step_idx: int | None = None
            ) -> tuple[str | None, utils.StepResult]:
        branch = self.context.branch
        if self.dry_run:
            return const.DRYRUN + "commit kept locally, push " \
                   "skipped", utils.StepResult.DONE
        assert self.credential is not None

        pusher.push(self.executor, self.path, self.credential,
            branch, app_slug=self.context.app_slug)
        self.result.autofix_pushed = True
        return f"pushed autofix commit to {branch}", \
               utils.StepResult.OK
