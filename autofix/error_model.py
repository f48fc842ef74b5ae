"""
Typed failures and the machine-readable error envelope.

Every fatal condition of a run is an `AutofixError` subclass
carrying a stable code and the workflow step it belongs to,
so the CLI can report and export a consistent result no
matter where the run stopped.
"""
from datetime import datetime, timezone
from dataclasses import asdict, dataclass, field


ENVELOPE_SCHEMA = "autofix.error_envelope.v1"
FALLBACK_CODE   = "AFX_INT_UNHANDLED_EXCEPTION"

# code: (severity, category)
ERROR_CODE_POLICY: dict[str, tuple[str, str]] = {
    "AFX_INT_UNHANDLED_EXCEPTION": ("error", "internal"),
    "AFX_INT_KEYBOARD_INTERRUPT":  ("warn",  "workflow"),
    "AFX_CFG_INVALID":             ("error", "config"),
    "AFX_GIT_SCAN_FAIL":           ("error", "git"),
    "AFX_SEC_CI_CONFIG":           ("error", "security"),
    "AFX_GIT_RECONCILE_FAIL":      ("error", "git"),
    "AFX_NET_FETCH_FAIL":          ("error", "network"),
    "AFX_GIT_REPLAY_CONFLICT":     ("error", "git"),
    "AFX_GIT_COMMIT_FAIL":         ("error", "git"),
    "AFX_NET_PUSH_FAIL":           ("error", "network"),
    "AFX_NET_AUTH_DENIED":         ("error", "auth"),
}


class AutofixError(Exception):
    """Base class for every failure that ends a run."""
    code = FALLBACK_CODE
    step = "orchestrate"

    def __init__(self, message: str, output: str = "",
                 remediation: str = "") -> None:
        super().__init__(message)
        self.message     = message
        self.output      = output
        self.remediation = remediation

    def __str__(self) -> str:
        parts = [self.message, self.remediation, self.output]
        return "\n".join(p for p in parts if p)


class ConfigurationError(AutofixError):
    code = "AFX_CFG_INVALID"
    step = "input"


class ScanError(AutofixError):
    code = "AFX_GIT_SCAN_FAIL"
    step = "detect"


class SecurityError(AutofixError):
    code = "AFX_SEC_CI_CONFIG"
    step = "security"


class ReconciliationError(AutofixError):
    code = "AFX_GIT_RECONCILE_FAIL"
    step = "reconcile"


class FetchFailed(ReconciliationError):
    code = "AFX_NET_FETCH_FAIL"


class ReplayConflict(ReconciliationError):
    """Autofix content conflicts with the target branch tip."""
    code = "AFX_GIT_REPLAY_CONFLICT"


class CommitError(AutofixError):
    code = "AFX_GIT_COMMIT_FAIL"
    step = "commit"


class PushError(AutofixError):
    code = "AFX_NET_PUSH_FAIL"
    step = "push"


class AuthorizationDenied(PushError):
    code = "AFX_NET_AUTH_DENIED"


# step -> code of the base error raised there
WORKFLOW_STEP_CODES: dict[str, str] = {
    cls.step: cls.code for cls in (ConfigurationError, ScanError,
    SecurityError, ReconciliationError, CommitError, PushError)
}


def resolve_failure_code(step: str = "", preferred_code: str = "",
                         fallback_code: str = FALLBACK_CODE) -> str:
    """Explicit code first, then the step's default code."""
    code = preferred_code.strip()
    if code: return code
    return WORKFLOW_STEP_CODES.get(step.strip(), fallback_code)


def error_policy_for(code: str) -> dict[str, str]:
    """Severity and category for `code`; unknown codes are internal."""
    severity, category = ERROR_CODE_POLICY.get(code.strip(),
                         ERROR_CODE_POLICY[FALLBACK_CODE])
    return {"severity": severity, "category": category}


@dataclass(frozen=True)
class FailureEvent:
    """Where and how a run failed, as seen by the orchestrator."""
    step: str
    label: str
    message: str
    code: str = ""
    severity: str = ""
    category: str = ""


@dataclass(frozen=True)
class ErrorEnvelope:
    code: str
    severity: str
    category: str
    message: str
    step: str
    output_excerpt: str = ""
    raw_ref: str = ""
    suggested_fix: str = ""
    context: dict[str, object] = field(default_factory=dict)

    def as_dict(self) -> dict[str, object]:
        return asdict(self)

    def with_runtime_schema(self) -> dict[str, object]:
        stamp = datetime.now(timezone.utc).isoformat(
                timespec="seconds").replace("+00:00", "Z")
        return {"schema": ENVELOPE_SCHEMA, "schema_version": 1,
                "generated_at": stamp, **self.as_dict()}


def build_error_envelope(**fields: object) -> ErrorEnvelope:
    """Construct a typed error envelope from keyword fields."""
    return ErrorEnvelope(**fields)  # type: ignore[arg-type]
