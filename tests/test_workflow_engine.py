"""Orchestrator state machine with faked git phases."""


from contextlib import redirect_stdout
from argparse import Namespace
from unittest.mock import patch
from io import StringIO
import unittest

from autofix.workflow_engine import Orchestrator, RunResult
from autofix.context import BuildContext
from autofix.error_model import (
    AuthorizationDenied,
    CommitError,
    ConfigurationError,
    ReplayConflict,
    ScanError,
    SecurityError,
)
from autofix.gitutils import ProcessError
from autofix import utils


PR = BuildContext(
    repository_url="https://github.com/org/repo.git",
    pr_repository_url="https://github.com/org/repo.git",
    pr_id="42",
    branch="feature",
    app_slug="slug",
)


def _args(**overrides: object) -> Namespace:
    base: dict[str, object] = {
        "path": ".",
        "quiet": True,
        "plain": True,
        "verbose": False,
        "dry_run": False,
        "git_token": "tok-1234",
        "git_username": "",
        "commit_subject": "Bitrise CI Autofix",
        "include_untracked": True,
        "log_dir": None,
        "show_config": False,
    }
    base.update(overrides)
    return Namespace(**base)


class _Status:
    def __init__(self, output: str = "", fail: bool = False) -> None:
        self.output = output
        self.fail   = fail
        self.calls: list[list[str]] = []

    def execute(self, name, args, cwd=None, env=None, raw=False):
        self.calls.append([name, *args])
        if self.fail:
            raise ProcessError(name, args, 128, "fatal: not a git repository")
        return self.output


def _run(args: Namespace, context: BuildContext = PR,
         executor: object | None = None
        ) -> tuple[Orchestrator, RunResult, object]:
    o = Orchestrator(args, context=context,
        executor=executor or _Status(" M a.py\n?? b.py\n"))
    with redirect_stdout(StringIO()):
        result, error = o.orchestrate()
    return o, result, error


@patch("autofix.workflow_engine.pusher.push")
@patch("autofix.workflow_engine.composer.commit_all")
@patch("autofix.workflow_engine.reconciler.reconcile")
class OrchestratorSequenceTests(unittest.TestCase):
    def test_missing_token_is_configuration_error(self, rec, com, push) -> None:
        _, result, error = _run(_args(git_token="  "))
        self.assertIsInstance(error, ConfigurationError)
        self.assertEqual(result, RunResult())
        rec.assert_not_called()

    def test_non_pr_build_skips(self, rec, com, push) -> None:
        ex = _Status(" M a.py\n")
        _, result, error = _run(_args(), BuildContext(branch="main"), ex)
        self.assertIsNone(error)
        self.assertFalse(result.autofix_needed)
        self.assertEqual(ex.calls, [])

    def test_fork_pr_skips(self, rec, com, push) -> None:
        fork = BuildContext(repository_url="https://x/org/repo.git",
               pr_repository_url="https://x/fork/repo.git",
               pr_id="7", branch="feature")
        ex = _Status(" M a.py\n")
        _, result, error = _run(_args(), fork, ex)
        self.assertIsNone(error)
        self.assertEqual(result, RunResult())
        self.assertEqual(ex.calls, [])

    def test_no_changes(self, rec, com, push) -> None:
        _, result, error = _run(_args(), executor=_Status(""))
        self.assertIsNone(error)
        self.assertEqual(result, RunResult())
        rec.assert_not_called()

    def test_scan_failure(self, rec, com, push) -> None:
        _, result, error = _run(_args(), executor=_Status(fail=True))
        self.assertIsInstance(error, ScanError)
        self.assertFalse(result.autofix_needed)

    def test_security_refusal_keeps_needed(self, rec, com, push) -> None:
        o, result, error = _run(_args(),
                           executor=_Status(" M bitrise.yml\n"))
        self.assertIsInstance(error, SecurityError)
        self.assertTrue(result.autofix_needed)
        self.assertFalse(result.autofix_pushed)
        self.assertEqual(result.file_count, 1)
        self.assertEqual(o.failure_hint.step, "security")
        self.assertEqual(o.failure_hint.category, "security")
        rec.assert_not_called()

    def test_missing_branch_after_detection(self, rec, com, push) -> None:
        ctx = BuildContext(pr_id="1", branch="")
        _, result, error = _run(_args(), ctx)
        self.assertIsInstance(error, ConfigurationError)
        self.assertTrue(result.autofix_needed)
        rec.assert_not_called()

    def test_reconcile_failure(self, rec, com, push) -> None:
        rec.side_effect = ReplayConflict("conflict")
        o, result, error = _run(_args())
        self.assertIsInstance(error, ReplayConflict)
        self.assertTrue(result.autofix_needed)
        self.assertEqual(o.failure_hint.code, "AFX_GIT_REPLAY_CONFLICT")
        com.assert_not_called()

    def test_commit_failure(self, rec, com, push) -> None:
        com.side_effect = CommitError("git commit failed")
        _, result, error = _run(_args())
        self.assertIsInstance(error, CommitError)
        self.assertTrue(result.autofix_needed)
        push.assert_not_called()

    def test_dry_run_stops_before_push(self, rec, com, push) -> None:
        _, result, error = _run(_args(dry_run=True))
        self.assertIsNone(error)
        self.assertEqual(result, RunResult(autofix_needed=True,
                         autofix_pushed=False, file_count=2,
                         dry_run=True))
        com.assert_called_once()
        push.assert_not_called()

    def test_push(self, rec, com, push) -> None:
        o, result, error = _run(_args(git_username="bot"))
        self.assertIsNone(error)
        self.assertEqual(result, RunResult(autofix_needed=True,
                         autofix_pushed=True, file_count=2))
        _, _, branch, cred, changes = rec.call_args.args
        self.assertEqual(branch, "feature")
        self.assertEqual(cred.username, "bot")
        self.assertEqual([c.path for c in changes], ["a.py", "b.py"])
        message = com.call_args.args[2]
        self.assertTrue(message.startswith("Bitrise CI Autofix\n"))
        self.assertIn("- b.py", message)
        self.assertEqual(push.call_args.args[3], "feature")
        self.assertEqual(push.call_args.kwargs["app_slug"], "slug")

    def test_push_denied(self, rec, com, push) -> None:
        push.side_effect = AuthorizationDenied("denied", remediation="fix")
        o, result, error = _run(_args())
        self.assertIsInstance(error, AuthorizationDenied)
        self.assertTrue(result.autofix_needed)
        self.assertFalse(result.autofix_pushed)
        self.assertEqual(result.file_count, 2)
        self.assertEqual(o.failure_hint.code, "AFX_NET_AUTH_DENIED")

    def test_untracked_excluded(self, rec, com, push) -> None:
        _, result, _ = _run(_args(include_untracked=False, dry_run=True))
        self.assertEqual(result.file_count, 1)
        self.assertIs(rec.call_args.kwargs["include_untracked"], False)
        self.assertNotIn("- b.py", com.call_args.args[2])


class WorkflowPlanTests(unittest.TestCase):
    def test_plan_shapes_match(self) -> None:
        o = Orchestrator(_args(), context=PR, executor=_Status())
        steps, labels, keys = o._workflow_plan()
        self.assertEqual(len(steps), len(labels))
        self.assertEqual(len(steps), len(keys))
        self.assertEqual(keys[0], "input")
        self.assertEqual(keys[-1], "push")

    def test_stage_results(self) -> None:
        o = Orchestrator(_args(), context=BuildContext(),
            executor=_Status())
        with redirect_stdout(StringIO()):
            msg, result = o.check_pr_build()
        self.assertIs(result, utils.StepResult.DONE)
        self.assertIn("not a pull request", msg)


if __name__ == "__main__":
    unittest.main()
