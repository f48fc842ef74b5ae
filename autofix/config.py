"""Layered runtime configuration for autofix.

Precedence order (low -> high):
1) argparse defaults
2) pyproject.toml ([tool.autofix]) at the checkout root
3) git config `autofix.*` (global, then local repository)
4) environment variables (CI step inputs, then fallbacks)
5) explicit CLI options

Credentials and `include_untracked` have no file or git key:
anything committed to the checkout could be written by the very
pull request being fixed.
"""
from __future__ import annotations

from argparse import SUPPRESS, ArgumentParser, Namespace
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
import os

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from .gitutils import ProcessError, SubprocessExecutor


TRUTHY = frozenset({"1", "true", "yes", "on"})
FALSY  = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class OptionSpec:
    dest: str
    kind: str  # "bool" | "str"
    env_keys: tuple[str, ...]
    file_key: str | None = None
    secret: bool = False

    def coerce(self, raw: object) -> object:
        """Convert a layer's raw value; ValueError names the problem."""
        if self.kind == "bool":
            if isinstance(raw, bool): return raw
            text = str(raw).strip().lower()
            if text in TRUTHY: return True
            if text in FALSY: return False
            raise ValueError(f"invalid boolean value for {self.dest}; "
                             "use true/false")
        if not isinstance(raw, str):
            raise ValueError(f"invalid value type for {self.dest}; "
                             "expected string")
        return raw


SPECS: tuple[OptionSpec, ...] = (
    OptionSpec("git_username", "str", ("git_username", "GIT_HTTP_USERNAME")),
    OptionSpec("git_token", "str", ("git_token", "GIT_HTTP_PASSWORD"),
               secret=True),
    OptionSpec("commit_subject", "str", ("commit_subject",), "commit-subject"),
    OptionSpec("dry_run", "bool", ("dry_run",), "dry-run"),
    OptionSpec("verbose", "bool", ("verbose",), "verbose"),
    OptionSpec("include_untracked", "bool", ("include_untracked",)),
    OptionSpec("plain", "bool", ("AUTOFIX_PLAIN",), "plain"),
    OptionSpec("quiet", "bool", ("AUTOFIX_QUIET",), "quiet"),
    OptionSpec("log_dir", "str", ("AUTOFIX_LOG_DIR",), "log-dir"),
)
FILE_KEYS: dict[str, OptionSpec] = {s.file_key: s for s in SPECS
                                    if s.file_key}


def _diag(level: str, source: str, key: str, raw: object,
          message: str) -> dict[str, str]:
    return {
        "level": level,
        "source": source,
        "key": key,
        "raw": str(raw),
        "message": message,
    }


def _checkout_root(path: str) -> Path | None:
    start = Path(path).expanduser().resolve()
    for folder in (start, *start.parents):
        if (folder / ".git").exists(): return folder
    return None


def _load_pyproject_overrides(path: str) -> tuple[dict[str, object],
                                                   list[dict[str, str]],
                                                   str | None]:
    """Read [tool.autofix] from the checkout root only."""
    root = _checkout_root(path) or Path(path).expanduser().resolve()
    pyproject = root / "pyproject.toml"
    if not pyproject.is_file(): return {}, [], None

    where = str(pyproject)
    try:
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        return {}, [_diag("error", "pyproject", "tool.autofix", "",
                    f"failed to parse pyproject.toml: {exc}")], where

    table = data.get("tool", {}).get("autofix")
    if table is None: return {}, [], where
    if not isinstance(table, dict):
        return {}, [_diag("error", "pyproject", "tool.autofix",
                    type(table).__name__, "tool.autofix must be a "
                    "table, e.g. [tool.autofix]")], where

    values: dict[str, object] = {}
    diagnostics: list[dict[str, str]] = []
    for raw_key, raw_val in table.items():
        spec = FILE_KEYS.get(str(raw_key).strip().lower()
               .replace("_", "-"))
        if spec is None:
            # never echo the value; it may be a misplaced secret
            diagnostics.append(_diag("warning", "pyproject",
                str(raw_key), "<hidden>", "unknown key in "
                "[tool.autofix]; credentials and include_untracked "
                "are read from the environment only"))
            continue
        values[spec.dest] = raw_val
    return values, diagnostics, where


def _git_config(scope: str, cwd: str | None = None) -> dict[str, str]:
    try:
        out = SubprocessExecutor().execute("git", ["config", scope,
              "--get-regexp", r"^autofix\."], cwd=cwd, raw=True)
    except ProcessError:
        # exit 1 means no matching keys
        return {}
    found: dict[str, str] = {}
    for line in out.splitlines():
        key, _, value = line.strip().partition(" ")
        if key: found[key.lower()] = value.strip()
    return found


def _load_git_overrides(path: str) -> dict[str, str]:
    entries = _git_config("--global")
    root = _checkout_root(path)
    if root is not None:
        entries.update(_git_config("--local", cwd=str(root)))
    return {spec.dest: entries[f"autofix.{key}"]
            for key, spec in FILE_KEYS.items()
            if f"autofix.{key}" in entries}


def _load_env_overrides(environ: Mapping[str, str] | None = None
                       ) -> dict[str, str]:
    """Each option takes its first non-blank variable."""
    env = os.environ if environ is None else environ
    found: dict[str, str] = {}
    for spec in SPECS:
        raw = next((env[k] for k in spec.env_keys
              if env.get(k, "").strip()), None)
        if raw is not None: found[spec.dest] = raw
    return found


def _explicit_cli_dests(argv: list[str], parser: ArgumentParser
                       ) -> set[str]:
    """Re-parse `argv` with every default suppressed."""
    saved = [(a, a.default) for a in parser._actions]
    saved_defaults = dict(parser._defaults)
    try:
        for action, _ in saved: action.default = SUPPRESS
        parser._defaults.clear()
        seen, _ = parser.parse_known_args(argv, Namespace())
    finally:
        for action, default in saved: action.default = default
        parser._defaults.update(saved_defaults)
    return set(vars(seen))


def apply_layered_config(args: Namespace, argv: list[str],
                         parser: ArgumentParser) -> Namespace:
    """Overlay file, git and env layers below explicit CLI options."""
    merged = Namespace(**vars(args))
    path = getattr(merged, "path", ".")
    explicit = _explicit_cli_dests(argv, parser)
    py_vals, diagnostics, pyproject_path = _load_pyproject_overrides(path)
    layers = (("pyproject", py_vals),
              ("git", _load_git_overrides(path)),
              ("env", _load_env_overrides()))

    sources = {k: "cli" if k in explicit else "default"
               for k in vars(merged)}
    for spec in SPECS:
        if spec.dest in explicit: continue
        for source, values in layers:
            if spec.dest not in values: continue
            raw = values[spec.dest]
            try: value = spec.coerce(raw)
            except ValueError as e:
                shown = "<hidden>" if spec.secret else raw
                diagnostics.append(_diag("warning", source, spec.dest,
                                   shown, str(e)))
                continue
            setattr(merged, spec.dest, value)
            sources[spec.dest] = source

    merged._autofix_config_sources = sources
    merged._autofix_config_diagnostics = diagnostics
    merged._autofix_config_files = {"pyproject": pyproject_path}
    return merged
