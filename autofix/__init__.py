"""autofix: commit CI-generated fixes back to the pull request."""


from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
import re

DISTRIBUTION = "ci-autofix"


def _source_tree_version() -> str | None:
    """Version from a sibling pyproject.toml when running from a checkout."""
    pyproject = Path(__file__).resolve().parent.parent / "pyproject.toml"
    try: text = pyproject.read_text(encoding="utf-8")
    except OSError: return None
    found = re.search(r'^version\s*=\s*"([^"]+)"', text, re.MULTILINE)
    return found.group(1) if found else None


try: __version__ = version(DISTRIBUTION)
except PackageNotFoundError:
    __version__ = _source_tree_version() or "0+local"
