"""Constants across autofix."""


from argparse import Namespace

from tuikit.textools import style_text as color


DRYRUN         = color("[dry-run] ", "gray")
GOOD           = "green"
BAD            = "red"
PROMPT         = "yellow"
INFO           = "cyan"
SPEED          = 0.0
HOLD           = 0.0
APP            = "[autofix]"
AUTOFIX        = color(f"{APP} ", "magenta")
I              = 10

# Commit identity used for every commit this tool creates.
BOT_NAME       = "Bitrise Autofix"
BOT_EMAIL      = "autofix@bitrise.io"
SOURCE_URL     = "https://github.com/bitrise-steplib/bitrise-step-autofix-ci"
DEFAULT_SUBJECT = "Bitrise CI Autofix"
REMOTE         = "origin"

# CI configuration that must never be committed by the bot.
CI_MANIFESTS   = ("bitrise.yml", "bitrise.yaml")
CI_META_DIR    = ".bitrise"

# Runtime flags: initialized once per invocation by CLI.
PLAIN   = False
QUIET   = False


def sync_runtime_flags(args: Namespace) -> None:
    """Synchronize runtime flags from parsed CLI args."""
    global PLAIN, QUIET

    PLAIN   = bool(getattr(args, "plain", False))
    QUIET   = bool(getattr(args, "quiet", False))
