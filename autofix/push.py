"""Push the autofix commit with one-shot credentials."""
from __future__ import annotations

from .error_model import AuthorizationDenied, PushError
from .credential import Credential, scoped_helper
from .gitutils import Executor, ProcessError
from . import gitutils


SETTINGS_URL = "https://app.bitrise.io/app/{slug}/settings/repository"
PERMISSION_SETTING = "Extend GitHub App permissions to builds"


def is_permission_denied(output: str) -> bool:
    """
    Detect the 403 GitHub returns when the build's App token
    lacks write access to the repository.
    """
    return "remote: Permission to" in output and "denied" in output


def remediation_hint(app_slug: str) -> str:
    url = SETTINGS_URL.format(slug=app_slug or "<app-slug>")
    return (f"Go to {url} and enable \"{PERMISSION_SETTING}\" "
            "so builds can push to this repository.")


def push(executor: Executor, cwd: str, credential: Credential,
         branch: str, app_slug: str = "") -> None:
    """
    Push HEAD to `origin/<branch>`.

    The refspec is always explicit because the local branch
    may have just been created without upstream tracking.
    """
    with scoped_helper(credential) as helper:
        try:
            gitutils.push_head(executor, cwd, branch,
                helper.git_options(), env=helper.env)
        except ProcessError as e:
            if is_permission_denied(e.output):
                raise AuthorizationDenied(
                    "push failed: the token does not have write "
                    "access to this repository",
                    output=e.output,
                    remediation=remediation_hint(app_slug)) from e
            raise PushError(f"git push to {branch} failed",
                  output=e.output) from e
