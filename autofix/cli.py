#!/usr/bin/env python3
"""
Primary CLI entry point for the `autofix` CI step.

Runs after formatters or code generators in a pull request
build and turns whatever they changed in the checkout into a
single commit pushed back to the pull request branch.

The process exits non-zero whenever an autofix was needed
and not only previewed, so the unfixed build never passes;
the fixed commit triggers a build of its own.

Uses `main` as the safe entry point to invoke the CLI.
"""


# ======================= STANDARDS =======================
import argparse
import json
import sys
import os

# ======================== LOCALS =========================
from .workflow_engine import Orchestrator, RunResult
from .context import BUILD_SLUG_ENV, default_log_dir
from .error_model import (
    AutofixError,
    FailureEvent,
    build_error_envelope,
    error_policy_for,
)
from .outputs import export_outputs, output_values
from . import _constants as const
from . import __version__
from . import telemetry
from . import gitutils
from . import config
from . import utils


ENVELOPE_FILENAME = "last_error_envelope.json"

# code -> (what went wrong, what to do about it)
COMMON_FAILURE_FIXES: dict[str, tuple[str, str]] = {
    "AFX_CFG_INVALID": (
        "step inputs are invalid",
        "Provide git_token (or GIT_HTTP_PASSWORD) and run on a branch build.",
    ),
    "AFX_GIT_SCAN_FAIL": (
        "change detection failed",
        "Make sure the step runs inside the cloned repository.",
    ),
    "AFX_SEC_CI_CONFIG": (
        "CI configuration was modified",
        "Commit changes to bitrise.yml or .bitrise/ manually.",
    ),
    "AFX_GIT_RECONCILE_FAIL": (
        "could not anchor changes on the branch tip",
        "Inspect the git output above and rerun the build.",
    ),
    "AFX_NET_FETCH_FAIL": (
        "fetching the pull request branch failed",
        "Verify the token can read the repository and the branch exists.",
    ),
    "AFX_GIT_REPLAY_CONFLICT": (
        "autofix conflicts with newer commits on the branch",
        "Pull the latest branch, rerun the tools locally and push.",
    ),
    "AFX_GIT_COMMIT_FAIL": (
        "commit step failed",
        "Check repository hooks and git output, then rerun.",
    ),
    "AFX_NET_PUSH_FAIL": (
        "push step failed",
        "Verify remote access and network, then rerun the build.",
    ),
    "AFX_NET_AUTH_DENIED": (
        "push was denied",
        "Grant the token write access to the repository.",
    ),
}
GENERIC_FIX = ("autofix failed",
               "Rerun with --verbose and inspect debug.log.")


def exit_code_for(result: RunResult, error: BaseException | None
                 ) -> int:
    """A pushed autofix fails the build; a previewed one does not."""
    if error is not None: return 1
    if result.autofix_needed and not result.dry_run: return 1
    return 0


def _log_dir(args: argparse.Namespace) -> str | None:
    """`--log-dir` first, then the CI deploy directory."""
    chosen = getattr(args, "log_dir", None)
    if isinstance(chosen, str) and chosen.strip():
        return os.path.abspath(os.path.expanduser(chosen))
    return default_log_dir()


def _build_runtime_error_envelope(
    args: argparse.Namespace,
    error: BaseException,
    failure_hint: FailureEvent | None = None,
) -> dict[str, object]:
    """Describe a failed run as a stable, machine-readable envelope."""
    if isinstance(error, AutofixError):
        code, step = error.code, error.step
        message, output = error.message, error.output
        fix = error.remediation
    elif isinstance(error, KeyboardInterrupt):
        code, step = "AFX_INT_KEYBOARD_INTERRUPT", "orchestrate"
        message, output = "run interrupted by keyboard input", ""
        fix = "Rerun the step when ready."
    else:
        code, step = "AFX_INT_UNHANDLED_EXCEPTION", "orchestrate"
        message, output = str(error).strip() or type(error).__name__, ""
        fix = ""

    policy = error_policy_for(code)
    if failure_hint is not None:
        step = failure_hint.step or step
        policy["severity"] = failure_hint.severity or policy["severity"]
        policy["category"] = failure_hint.category or policy["category"]

    log_dir = _log_dir(args)
    envelope = build_error_envelope(
        code=code,
        severity=policy["severity"],
        category=policy["category"],
        message=message,
        step=step,
        context={
            "path": os.path.abspath(getattr(args, "path", ".")),
            "dry_run": bool(getattr(args, "dry_run", False)),
            "include_untracked": bool(getattr(args,
                                 "include_untracked", True)),
        },
        suggested_fix=fix or COMMON_FAILURE_FIXES.get(code,
                      GENERIC_FIX)[1],
        output_excerpt=output[:400],
        raw_ref=os.path.join(log_dir, ENVELOPE_FILENAME)
                if log_dir else "",
    )
    return envelope.with_runtime_schema()


def _report_failure(args: argparse.Namespace, error: BaseException,
                    hint: FailureEvent | None, out: utils.Output
                   ) -> None:
    """Print, record and persist what stopped the run."""
    envelope = _build_runtime_error_envelope(args, error, hint)
    code = str(envelope["code"])
    step = str(envelope["step"])
    summary, fix = COMMON_FAILURE_FIXES.get(code, GENERIC_FIX)

    out.warn(f"ERROR: {error}")
    out.warn(f"summary: {summary}")
    out.warn(f"fix: {fix}")
    if getattr(args, "verbose", False):
        out.warn("advanced details:")
        out.warn(f"code={code} step={step} "
                 f"severity={envelope['severity']} "
                 f"category={envelope['category']}")
        if envelope["suggested_fix"]:
            out.warn(f"suggested_fix={envelope['suggested_fix']}")

    telemetry.record("runtime_error", step, **envelope)

    log_dir = _log_dir(args)
    if not log_dir: return
    path = os.path.join(log_dir, ENVELOPE_FILENAME)
    try:
        os.makedirs(log_dir, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(telemetry.scrub(envelope), f, indent=2)
        out.warn(f"error envelope written: {utils.pathit(path)}")
    except OSError as e:
        out.warn(f"failed to persist error envelope: {e}")


def show_effective_config(args: argparse.Namespace,
                          out: utils.Output) -> int:
    """Print the effective merged configuration with its sources."""
    keys = ["path"] + [spec.dest for spec in config.SPECS]
    secret = {spec.dest for spec in config.SPECS if spec.secret}
    sources = getattr(args, "_autofix_config_sources", {}) or {}

    effective: dict[str, object] = {}
    for key in keys:
        value = getattr(args, key, None)
        if key in secret and value: value = "***redacted***"
        effective[key] = value
    effective["_sources"] = {k: sources.get(k, "default")
                             for k in keys}
    effective["_config_files"] = getattr(args,
        "_autofix_config_files", {})
    effective["_config_diagnostics"] = getattr(args,
        "_autofix_config_diagnostics", [])
    out.raw(json.dumps(effective, indent=2, sort_keys=True))
    return 0


def _export(result: RunResult, out: utils.Output) -> None:
    """Export outputs; a failed export never changes the exit code."""
    try: exported = export_outputs(result)
    except RuntimeError as e:
        out.warn(f"failed to export outputs: {e}")
        return
    if not exported:
        out.warn("envman not found, outputs not exported")
    out.info("outputs:\n" + utils.bullets([f"{k}={v}" for k, v
        in output_values(result).items()]))


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="autofix",
        description="Commit and push changes made by CI "
        "formatters back to the pull request branch.")
    p.add_argument("--version", action="version",
        version=f"{const.APP} {__version__}")
    p.add_argument("--show-config", action="store_true")

    p.add_argument("path", nargs="?", default=".")
    p.add_argument("--dry-run", "-n", action="store_true")
    p.add_argument("--verbose", "-v", action="store_true")
    p.add_argument("--plain", action="store_true")
    p.add_argument("--quiet", "-q", action="store_true")
    p.add_argument("--no-untracked", dest="include_untracked",
                   action="store_false")
    p.add_argument("--commit-subject",
                   default=const.DEFAULT_SUBJECT)
    p.add_argument("--git-username", default=None)
    p.add_argument("--log-dir", default=None)

    # token is only read from the environment
    p.set_defaults(git_token=None)
    return p


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Add and parse arguments."""
    parser = _build_parser()
    parsed = parser.parse_args(argv)
    return config.apply_layered_config(parsed, argv, parser)


def main() -> None:
    """
    CLI entry point for the `autofix` tool.

    Outputs are exported whether or not the run failed, and
    the process always ends through the exit contract.
    """
    args = parse_args(sys.argv[1:])
    const.sync_runtime_flags(args)
    out = utils.Output(quiet=args.quiet)
    if args.show_config:
        sys.exit(show_effective_config(args, out))

    log_dir = _log_dir(args)
    telemetry.start(log_dir, run_id=os.environ.get(BUILD_SLUG_ENV))
    gitutils.configure_logger(log_dir, verbose=args.verbose)

    orchestrator: Orchestrator | None = None
    result = RunResult(dry_run=bool(args.dry_run))
    error: BaseException | None = None
    try:
        orchestrator = Orchestrator(args)
        result, error = orchestrator.orchestrate()
    except (Exception, KeyboardInterrupt) as e:
        if orchestrator is not None: result = orchestrator.result
        error = e
    hint = orchestrator.failure_hint if orchestrator else None

    _export(result, out)
    if error is not None: _report_failure(args, error, hint, out)

    code = exit_code_for(result, error)
    telemetry.record("run_finished", "orchestrate", exit_code=code,
        **output_values(result))
    if error is None and code:
        out.warn("autofix pushed; failing this build so the fixed "
                 "commit gets its own")
    elif error is None: out.success("done")
    sys.exit(code)
