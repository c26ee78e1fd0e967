"""
Classify incoming GitHub events into what the reconciler needs to know.
"""

from __future__ import annotations

import dataclasses
from typing import Union

from require_matching_label.types import EventDict, ItemId


class InvalidEvent(ValueError):
    """Raised when an event is missing something we need to act on it."""


@dataclasses.dataclass(frozen=True)
class Issue:
    """The event is about an issue.  Issues have no branch."""


@dataclasses.dataclass(frozen=True)
class PullRequest:
    """The event is about a pull request, targeting `branch`."""
    branch: str


ItemKind = Union[Issue, PullRequest]

# Actions whose event carries the label that was changed.
LABEL_ACTIONS = {"labeled", "unlabeled"}


@dataclasses.dataclass(frozen=True)
class Event:
    """
    One change to an issue or pull request.
    """
    org: str
    repo: str
    number: int
    item: ItemKind

    # The label added or removed, or "" if the event isn't a label change.
    trigger_label: str = ""

    # The login of whoever opened the item.
    author: str = ""

    @property
    def is_pull_request(self) -> bool:
        return isinstance(self.item, PullRequest)

    @property
    def branch(self) -> str:
        if isinstance(self.item, PullRequest):
            return self.item.branch
        return ""

    @property
    def item_id(self) -> ItemId:
        return ItemId.from_parts(self.org, self.repo, self.number)

    def validate(self) -> None:
        """Raise InvalidEvent if we can't make any decisions about this event."""
        if not self.org:
            raise InvalidEvent(f"Event has no org: {self!r}")
        if not self.repo:
            raise InvalidEvent(f"Event has no repo: {self!r}")
        if not self.number:
            raise InvalidEvent(f"Event has no issue or pull request number: {self!r}")
        if self.is_pull_request and not self.branch:
            raise InvalidEvent(f"Pull request event has no base branch: {self!r}")

    def __str__(self):
        kind = f"pull request (branch {self.branch})" if self.is_pull_request else "issue"
        text = f"{kind} {self.item_id}"
        if self.trigger_label:
            text += f", label {self.trigger_label!r}"
        return text


def classify(raw_event: EventDict) -> Event:
    """
    Make an Event from a GitHub `issues` or `pull_request` webhook payload.

    Payloads are checked for shape before we get them, so this doesn't
    complain about missing data: Event.validate does that.
    """
    repository = raw_event.get("repository") or {}
    org = (repository.get("owner") or {}).get("login", "")
    repo = repository.get("name", "")

    item: ItemKind
    if "pull_request" in raw_event:
        data = raw_event["pull_request"] or {}
        item = PullRequest(branch=(data.get("base") or {}).get("ref", ""))
    else:
        data = raw_event.get("issue") or {}
        item = Issue()

    trigger_label = ""
    if raw_event.get("action") in LABEL_ACTIONS:
        trigger_label = (raw_event.get("label") or {}).get("name", "")

    return Event(
        org=org,
        repo=repo,
        number=data.get("number", 0),
        item=item,
        trigger_label=trigger_label,
        author=(data.get("user") or {}).get("login", ""),
    )
