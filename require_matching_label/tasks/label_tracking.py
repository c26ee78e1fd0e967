"""
Making the label and comment changes that reconciliation asks for.
"""

from __future__ import annotations

import contextlib
from typing import FrozenSet, Iterable, List
from urllib.parse import quote

import redis
from flask import current_app
from redis.lock import Lock

from require_matching_label.auth import get_github_session
from require_matching_label.bot_comments import is_stale_notification, missing_label_comment
from require_matching_label.events import Event
from require_matching_label.info import get_bot_comments
from require_matching_label.reconcile import AddLabel, Mutation, PostComment, RemoveLabel
from require_matching_label.tasks import logger
from require_matching_label.types import ItemId
from require_matching_label.utils import (
    log_check_response,
    memoize,
    paginated_get,
    text_summary,
)


class LabelActions:
    """
    The GitHub operations the reconciler needs on one issue or pull request.

    All arguments must be JSON-serializable so that dry-runs can report on the
    actions.
    """

    def __init__(self, item_id: ItemId):
        self.item_id = item_id
        self.issue_url = f"/repos/{item_id.full_name}/issues/{item_id.number}"

    def fetch_current_labels(self) -> FrozenSet[str]:
        """
        Get the names of the labels on the item right now.
        """
        url = f"{self.issue_url}/labels"
        labels = frozenset(lbl["name"] for lbl in paginated_get(url, session=get_github_session()))
        logger.debug(f"Labels on {self.item_id}: {sorted(labels)}")
        return labels

    def add_label(self, *, name: str) -> None:
        logger.info(f"Adding label {name!r} to {self.item_id}")
        resp = get_github_session().post(f"{self.issue_url}/labels", json={"labels": [name]})
        log_check_response(resp)

    def remove_label(self, *, name: str) -> None:
        logger.info(f"Removing label {name!r} from {self.item_id}")
        resp = get_github_session().delete(f"{self.issue_url}/labels/{quote(name, safe='')}")
        if resp.status_code == 404:
            # Someone beat us to it.
            logger.info(f"Label {name!r} was already gone from {self.item_id}")
            return
        log_check_response(resp)

    def post_comment(self, *, comment_body: str) -> None:
        logger.info(f"Commenting on {self.item_id}: {text_summary(comment_body, 90)!r}")
        resp = get_github_session().post(f"{self.issue_url}/comments", json={"body": comment_body})
        log_check_response(resp)

    def prune_stale_notifications(self, *, text: str) -> None:
        """
        Delete the bot's notification comments that contain `text`.
        """
        stale = [
            comment for comment in get_bot_comments(self.item_id)
            if is_stale_notification(comment["body"], text)
        ]
        for comment in stale:
            logger.info(f"Deleting stale notification {comment['id']} on {self.item_id}")
            url = f"/repos/{self.item_id.full_name}/issues/comments/{comment['id']}"
            resp = get_github_session().delete(url)
            log_check_response(resp)


class DryRunLabelActions:
    """
    Actions for dry runs: labels are really read, changes are only recorded.
    """

    def __init__(self, item_id: ItemId):
        self.item_id = item_id
        self.action_calls: List = []

    def fetch_current_labels(self) -> FrozenSet[str]:
        return LabelActions(self.item_id).fetch_current_labels()

    def __getattr__(self, name):
        def fn(**kwargs):
            self.action_calls.append((name, kwargs))
        return fn


# Longest a pass may hold an item's lock, or wait for it.  The lock expires on
# its own if a worker dies holding it.
ITEM_LOCK_TIMEOUT = 120


@memoize
def redis_store() -> redis.Redis:
    """The Redis that Celery uses as its broker, shared by every worker process."""
    return redis.from_url(current_app.config["BROKER_URL"])


def item_lock(item_id: ItemId) -> Lock:
    """
    A lock to serialize reconciliation passes on one item, across all workers.

    Two overlapping passes would each read labels before the other's changes
    land, and could add and remove the same label.  Raises redis LockError if
    the lock can't be had within ITEM_LOCK_TIMEOUT seconds.
    """
    return redis_store().lock(
        f"require_matching_label:item:{item_id}",
        timeout=ITEM_LOCK_TIMEOUT,
        blocking_timeout=ITEM_LOCK_TIMEOUT,
    )


class LabelChangesFailed(ExceptionGroup):
    """
    Some of the changes for an event failed.

    `applied` lists the mutations that were made anyway.
    """
    applied: List[Mutation]


class LabelFixer:
    """
    Carry out a list of mutations for one event.
    """

    def __init__(self, event: Event, actions) -> None:
        self.event = event
        self.actions = actions
        self.exceptions: List[Exception] = []
        self.applied: List[Mutation] = []

    @contextlib.contextmanager
    def saved_exceptions(self):
        """
        A context manager to wrap around isolatable steps.

        An exception raised in the with-block is logged and added to
        `self.exceptions`.
        """
        try:
            yield
        except Exception as exc:    # pylint: disable=broad-exception-caught
            logger.exception(f"Couldn't update {self.event.item_id}")
            self.exceptions.append(exc)

    def fix(self, mutations: Iterable[Mutation]) -> None:
        """
        Make every change, even if some fail.  Failures are raised together
        at the end as LabelChangesFailed: they are not retried.
        """
        for mutation in mutations:
            with self.saved_exceptions():
                self._apply(mutation)
                self.applied.append(mutation)

        if self.exceptions:
            exc = LabelChangesFailed("Some label changes failed", self.exceptions)
            exc.applied = self.applied
            raise exc

    def _apply(self, mutation: Mutation) -> None:
        match mutation:
            case AddLabel(name=name):
                self.actions.add_label(name=name)
            case RemoveLabel(name=name, notification=notification):
                self.actions.remove_label(name=name)
                if notification:
                    self.actions.prune_stale_notifications(text=notification)
            case PostComment(text=text):
                body = missing_label_comment(text, user=self.event.author)
                self.actions.post_comment(comment_body=body)
            case _:
                raise TypeError(f"Unknown mutation: {mutation!r}")
