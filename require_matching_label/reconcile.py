"""
State-based reconciliation of require-matching-label rules.

Everything here is a pure function of the rules, the event, and one snapshot
of the item's labels.  Making the changes is someone else's job: see
tasks/label_tracking.py.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import AbstractSet, Iterable, List, Union

from require_matching_label.events import Event
from require_matching_label.matching import is_relevant, matches_scope
from require_matching_label.rules import Rule, RuleSet

logger = logging.getLogger(__name__)

# The names of the labels on an item, read once per event.
LabelSnapshot = AbstractSet[str]


@dataclasses.dataclass(frozen=True)
class AddLabel:
    name: str


@dataclasses.dataclass(frozen=True)
class RemoveLabel:
    name: str
    # The rule's notification text, so that earlier notifications can be
    # retracted when the label comes off.
    notification: str = ""


@dataclasses.dataclass(frozen=True)
class PostComment:
    text: str


Mutation = Union[AddLabel, RemoveLabel, PostComment]


def is_satisfied(rule: Rule, snapshot: LabelSnapshot) -> bool:
    """Does any label on the item match the rule's pattern?"""
    return any(rule.pattern.search(label) for label in snapshot)


def reconcile(rule: Rule, snapshot: LabelSnapshot) -> List[Mutation]:
    """
    Compare one rule with the labels, and decide what has to change.

    The marker label should be present exactly when the rule is unsatisfied.
    If it already is, nothing changes, so running this again on the labels it
    produced always gives [].
    """
    satisfied = is_satisfied(rule, snapshot)
    has_marker = rule.missing_label in snapshot

    if satisfied and has_marker:
        return [RemoveLabel(rule.missing_label, notification=rule.missing_comment)]

    if not satisfied and not has_marker:
        mutations: List[Mutation] = [AddLabel(rule.missing_label)]
        if rule.missing_comment:
            mutations.append(PostComment(rule.missing_comment))
        return mutations

    return []


def applicable_rules(rules: Iterable[Rule], event: Event) -> RuleSet:
    """The rules in scope for the event and relevant to what changed."""
    return tuple(
        rule for rule in rules
        if matches_scope(rule, event) and is_relevant(rule, event)
    )


def handle(rules: Iterable[Rule], event: Event, current_labels: Iterable[str]) -> List[Mutation]:
    """
    Decide all the changes needed on an item after `event`.

    `current_labels` is the one read of the item's labels for this event.
    Every rule is judged against it, so no rule sees the changes made for an
    earlier one.  Mutations come out in rule order.

    Raises InvalidEvent (with no mutations) if the event can't be acted on.
    """
    event.validate()
    snapshot = frozenset(current_labels)

    mutations: List[Mutation] = []
    for rule in applicable_rules(rules, event):
        changes = reconcile(rule, snapshot)
        if changes:
            logger.info(f"{event}: rule for {rule.missing_label!r} needs {changes}")
        mutations.extend(changes)
    return mutations
