"""
Run event log for autofix.

One JSON object per line in `<log_dir>/events.jsonl`, each
tagged with the run id (the CI build slug when there is one)
so a build's events can be pulled out of a shared log. Every
payload is scrubbed before it is written: the run's token is
registered at input validation and masked verbatim, and
credentials embedded in URLs or `key=value` pairs are masked
by pattern. Writing events is best effort.
"""
from datetime import datetime, timezone
from collections.abc import Mapping
from pathlib import Path
import json
import uuid
import re


EVENTS_FILENAME = "events.jsonl"
MASK            = "<redacted>"
MIN_SECRET_LEN  = 4

_run_id: str = ""
_events: Path | None = None
_secrets: set[str] = set()

_URL_USERINFO = re.compile(r"(?P<scheme>https?://)[^/\s@]+@")
_SECRET_PAIR  = re.compile(
    r"(?i)\b(?P<key>\w*(?:token|password|passwd|secret))"
    r"(?P<sep>\s*[:=]\s*)[^\s,'\"]+")


def _timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def start(log_dir: str | Path | None, run_id: str | None = None
         ) -> Path | None:
    """
    Begin a run. Without a log directory nothing is written,
    but the run id is still assigned.
    """
    global _run_id, _events
    _run_id = (run_id or "").strip() or uuid.uuid4().hex[:12]
    if log_dir is None:
        _events = None
        return None
    folder = Path(log_dir).expanduser().resolve()
    try: folder.mkdir(parents=True, exist_ok=True)
    except OSError:
        _events = None
        return None
    _events = folder / EVENTS_FILENAME
    return _events


def stop() -> None:
    global _events
    _events = None


def current_run_id() -> str:
    return _run_id


def events_path() -> Path | None:
    return _events


def register_secret(value: str) -> None:
    """Mask `value` verbatim in everything recorded afterwards."""
    if value and len(value) >= MIN_SECRET_LEN: _secrets.add(value)


def scrub(value: object) -> object:
    """Return `value` with secrets masked, containers copied."""
    if isinstance(value, str):
        for secret in _secrets: value = value.replace(secret, MASK)
        value = _URL_USERINFO.sub(rf"\g<scheme>{MASK}@", value)
        return _SECRET_PAIR.sub(rf"\g<key>\g<sep>{MASK}", value)
    if isinstance(value, Mapping):
        return {str(k): scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [scrub(v) for v in value]
    return value


def record(kind: str, stage: str, **fields: object) -> None:
    """Append one event; silently dropped when no run log is open."""
    if _events is None: return
    event = {
        "ts": _timestamp(),
        "run_id": _run_id,
        "kind": kind,
        "stage": stage,
        "fields": scrub(fields),
    }
    line = json.dumps(event, separators=(",", ":"), default=str)
    try:
        with _events.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
    except OSError: return
