"""CI platform facts for one run."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os


REPOSITORY_URL_ENV    = "GIT_REPOSITORY_URL"
PR_REPOSITORY_URL_ENV = "BITRISEIO_PULL_REQUEST_REPOSITORY_URL"
PR_ID_ENV             = "BITRISE_PULL_REQUEST"
BRANCH_ENV            = "BITRISE_GIT_BRANCH"
PR_HEAD_BRANCH_ENV    = "BITRISEIO_PULL_REQUEST_HEAD_BRANCH"
APP_SLUG_ENV          = "BITRISE_APP_SLUG"
BUILD_SLUG_ENV        = "BITRISE_BUILD_SLUG"
DEPLOY_DIR_ENV        = "BITRISE_DEPLOY_DIR"


@dataclass(frozen=True)
class BuildContext:
    repository_url: str = ""
    pr_repository_url: str = ""
    pr_id: str = ""
    branch: str = ""
    pr_head_branch: str = ""
    app_slug: str = ""

    @property
    def is_pr_build(self) -> bool:
        return bool(self.pr_id.strip())

    @property
    def is_fork_pr(self) -> bool:
        """An empty PR repo URL means this is not a PR build."""
        if not self.pr_repository_url: return False
        return self.repository_url != self.pr_repository_url


def read_build_context(environ: Mapping[str, str] | None = None
                      ) -> BuildContext:
    env = os.environ if environ is None else environ
    return BuildContext(
        repository_url=env.get(REPOSITORY_URL_ENV, ""),
        pr_repository_url=env.get(PR_REPOSITORY_URL_ENV, ""),
        pr_id=env.get(PR_ID_ENV, ""),
        branch=env.get(BRANCH_ENV, "").strip(),
        pr_head_branch=env.get(PR_HEAD_BRANCH_ENV, ""),
        app_slug=env.get(APP_SLUG_ENV, ""),
    )


def default_log_dir(environ: Mapping[str, str] | None = None
                   ) -> str | None:
    """Logs go outside the checkout so they never count as changes."""
    env = os.environ if environ is None else environ
    deploy = env.get(DEPLOY_DIR_ENV, "").strip()
    if not deploy: return None
    return os.path.join(deploy, "autofixlog")
