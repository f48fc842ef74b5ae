"""
Supply git credentials without exposing them in argv, remote
URLs or files.

A helper is a tiny POSIX shell script that git runs through
`-c credential.helper=<path>`. The script only references two
environment variable names; the actual values are handed to
the single git subprocess through its environment. The file
holds no secret and must be released right after use.
"""
from __future__ import annotations

from contextlib import contextmanager
from collections.abc import Iterator
from dataclasses import dataclass, field
import tempfile
import os


USERNAME_ENV_KEY = "GIT_HELPER_USERNAME"
TOKEN_ENV_KEY    = "GIT_HELPER_TOKEN"

# HTTPS git endpoints use basic auth, so a token-only
# credential still needs a username. GitHub App installation
# tokens use this one; other forges ignore it.
FALLBACK_USERNAME = "x-access-token"

_SCRIPT = (
    "#!/bin/sh\n"
    f'echo "username=${USERNAME_ENV_KEY}"\n'
    f'echo "password=${TOKEN_ENV_KEY}"\n'
)


@dataclass(frozen=True)
class Credential:
    username: str = ""
    token: str = field(default="", repr=False)


@dataclass(frozen=True)
class CredentialHelper:
    path: str
    env: dict[str, str] = field(repr=False)

    def git_options(self) -> list[str]:
        """`-c` options that make git use only this helper."""
        return ["-c", "credential.helper=",
                "-c", f"credential.helper={self.path}"]


def write_helper(username: str, token: str) -> CredentialHelper:
    """Write a helper script and return it with its env bindings."""
    if not username: username = FALLBACK_USERNAME

    fd, path = tempfile.mkstemp(prefix="git-credential-")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(_SCRIPT)
        os.chmod(path, 0o700)
    except OSError:
        release(CredentialHelper(path, {}))
        raise

    return CredentialHelper(path=path, env={
        USERNAME_ENV_KEY: username,
        TOKEN_ENV_KEY: token,
    })


def release(helper: CredentialHelper) -> None:
    try: os.remove(helper.path)
    except FileNotFoundError: pass


@contextmanager
def scoped_helper(credential: Credential
                 ) -> Iterator[CredentialHelper]:
    helper = write_helper(credential.username, credential.token)
    try: yield helper
    finally: release(helper)
