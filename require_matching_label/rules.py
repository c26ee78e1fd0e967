"""
The require-matching-label policy: rules, and reading them from YAML.

A rules file looks like this::

    require_matching_label:
    - org: kubernetes
      issues: true
      regexp: ^(sig|wg|committee)/
      missing_label: needs-sig
      missing_comment: |
        There are no sig labels on this issue. Please add an appropriate label.

    - org: kubernetes
      repo: test-infra
      branch: master
      prs: true
      regexp: ^kind/
      missing_label: needs-kind

The top-level ``require_matching_label`` key is optional: a bare list of rules
is accepted too.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

import yaml

from require_matching_label import settings
from require_matching_label.auth import get_github_session
from require_matching_label.utils import memoize_timed

logger = logging.getLogger(__name__)

# The key holding the list of rules, if the document is a mapping.
RULES_KEY = "require_matching_label"

RULE_KEYS = {
    "org", "repo", "branch", "issues", "prs", "regexp",
    "missing_label", "missing_comment", "grace_period",
}


class RuleConfigError(ValueError):
    """Raised when the rules file describes a rule we can't use."""


@dataclasses.dataclass(frozen=True)
class Rule:
    """
    One require-matching-label rule.

    Items in scope for the rule must have at least one label matching
    `pattern`.  If they don't, `missing_label` is added, and `missing_comment`
    (if any) is posted to explain why.
    """
    org: str
    pattern: re.Pattern
    missing_label: str

    # Empty means every repo in the org.
    repo: str = ""

    # Empty means every branch.  Only pull requests have branches.
    branch: str = ""

    issues: bool = False
    prs: bool = False

    missing_comment: str = ""

    # Seconds to wait before reading labels on a newly opened item: other
    # automation often labels items right after they are created.  Defaults to
    # settings.DEFAULT_GRACE_PERIOD as it is when the Rule is made.
    grace_period: float = dataclasses.field(default_factory=lambda: settings.DEFAULT_GRACE_PERIOD)

    def describe(self) -> Dict[str, Any]:
        """A JSON-ready description of the rule."""
        kinds = [kind for kind, on in [("issues", self.issues), ("pull requests", self.prs)] if on]
        scope = self.org
        if self.repo:
            scope += f"/{self.repo}"
        if self.branch:
            scope += f" (branch {self.branch})"
        return {
            "scope": scope,
            "applies_to": kinds,
            "regexp": self.pattern.pattern,
            "missing_label": self.missing_label,
            "missing_comment": self.missing_comment,
        }


RuleSet = Tuple[Rule, ...]


def parse_rule(data: Dict[str, Any], where: str = "rule") -> Rule:
    """
    Make a Rule from one mapping in the rules file.

    Raises RuleConfigError for anything wrong with the rule.
    """
    if not isinstance(data, dict):
        raise RuleConfigError(f"{where}: should be a mapping, not {data!r}")

    unknown = set(data) - RULE_KEYS
    if unknown:
        raise RuleConfigError(f"{where}: unknown keys: {', '.join(sorted(unknown))}")

    org = data.get("org") or ""
    if not org:
        raise RuleConfigError(f"{where}: 'org' is required")

    missing_label = data.get("missing_label") or ""
    if not missing_label:
        raise RuleConfigError(f"{where}: 'missing_label' is required")

    regexp = data.get("regexp") or ""
    if not regexp:
        raise RuleConfigError(f"{where}: 'regexp' is required")
    try:
        pattern = re.compile(regexp)
    except re.error as exc:
        raise RuleConfigError(f"{where}: bad regexp {regexp!r}: {exc}") from exc

    issues = bool(data.get("issues", False))
    prs = bool(data.get("prs", False))
    if not (issues or prs):
        raise RuleConfigError(f"{where}: must apply to at least one of 'issues' or 'prs'")

    grace_period = data.get("grace_period", settings.DEFAULT_GRACE_PERIOD)
    try:
        grace_period = float(grace_period)
    except (TypeError, ValueError) as exc:
        raise RuleConfigError(f"{where}: bad grace_period {grace_period!r}") from exc
    if grace_period < 0:
        raise RuleConfigError(f"{where}: grace_period can't be negative")

    return Rule(
        org=str(org),
        repo=str(data.get("repo") or ""),
        branch=str(data.get("branch") or ""),
        issues=issues,
        prs=prs,
        pattern=pattern,
        missing_label=str(missing_label),
        missing_comment=str(data.get("missing_comment") or "").strip(),
        grace_period=grace_period,
    )


def parse_rules(data: Any) -> RuleSet:
    """
    Make the tuple of Rules from a parsed rules document.

    The order of the rules is kept: it's the order their changes are made in.
    """
    if data is None:
        return ()
    if isinstance(data, dict):
        data = data.get(RULES_KEY) or []
    if not isinstance(data, list):
        raise RuleConfigError(f"Rules should be a list, not {type(data).__name__}")
    return tuple(parse_rule(rule, where=f"rule #{i + 1}") for i, rule in enumerate(data))


def load_rules_file(text: str) -> RuleSet:
    """Parse the YAML text of a rules file."""
    return parse_rules(yaml.safe_load(text))


def _github_file_url(repo_fullname: str, file_path: str) -> str:
    """Get the GitHub url to retrieve the text of a file."""
    # HEAD gets the tip of the default branch, whatever it is called.
    return f"https://raw.githubusercontent.com/{repo_fullname}/HEAD/{file_path}"


def _read_rules_text(repo: Optional[str], file_path: str) -> str:
    """Read the text of the rules file, from GitHub or the local disk."""
    if repo:
        url = _github_file_url(repo, file_path)
        logger.debug(f"Grabbing rules file from: {url}")
        resp = get_github_session().get(url)
        resp.raise_for_status()
        return resp.text
    return Path(file_path).read_text(encoding="utf-8")


# Rules are re-read at most every 15 minutes: that's our reload boundary.
@memoize_timed(minutes=15)
def get_rules() -> RuleSet:
    """
    Get the configured rules.
    """
    rules = load_rules_file(_read_rules_text(settings.RULES_REPO, settings.RULES_FILE))
    logger.info(f"Loaded {len(rules)} require-matching-label rules")
    return rules


def rules_for_repo(rules: Iterable[Rule], full_name: str) -> RuleSet:
    """
    Get the rules that could apply to some issue or pull request in a repo.

    `full_name` is "org/repo".
    """
    org, _, repo = full_name.partition("/")
    return tuple(
        rule for rule in rules
        if rule.org == org and (not rule.repo or rule.repo == repo)
    )
