"""
Decide which rules have anything to say about an event.
"""

from require_matching_label.events import Event, Issue, PullRequest
from require_matching_label.rules import Rule


def matches_scope(rule: Rule, event: Event) -> bool:
    """
    Does `rule` govern the item in `event`?

    The org must match exactly, and the repo too if the rule names one.  The
    rule must apply to this kind of item.  A rule's branch only restricts
    pull requests: issues have no branch, so a branch-scoped rule still covers
    the issues in its repo if it applies to issues at all.
    """
    if rule.org != event.org:
        return False
    if rule.repo and rule.repo != event.repo:
        return False

    match event.item:
        case Issue():
            return rule.issues
        case PullRequest(branch=branch):
            if not rule.prs:
                return False
            return not rule.branch or rule.branch == branch
    return False


def is_relevant(rule: Rule, event: Event) -> bool:
    """
    Is `event` worth reconciling `rule` for?

    Events that aren't label changes always are.  A label change is relevant
    if the label is in the rule's category, or is the rule's own marker label
    (someone added or removed it by hand).
    """
    label = event.trigger_label
    if not label:
        return True
    return bool(rule.pattern.search(label)) or label == rule.missing_label
