"""Settings for how the webhook should behave."""

import os
from typing import Optional


def read_float_setting(setting_name: str, default: float) -> float:
    """Read a number of seconds (or any float) from a setting."""
    value = os.environ.get(setting_name, None)
    if value is None:
        return default
    return float(value)


GITHUB_PERSONAL_TOKEN = os.environ.get("GITHUB_PERSONAL_TOKEN", None)

# Where the require-matching-label rules come from.  If RULES_REPO is set
# ("org/repo"), RULES_FILE is read from the tip of that repo on GitHub.
# Otherwise RULES_FILE is a path on the local filesystem.
RULES_REPO: Optional[str] = os.environ.get("RULES_REPO", None)
RULES_FILE = os.environ.get("RULES_FILE", "require-matching-label.yaml")

# How long to wait before reading labels, when a rule doesn't say.
DEFAULT_GRACE_PERIOD = read_float_setting("DEFAULT_GRACE_PERIOD", 5.0)
