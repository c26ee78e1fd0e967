"""
Queuable background tasks to reconcile labels.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from time import sleep as grace_sleep   # so that we can patch it for tests.
from typing import Dict, FrozenSet, List, Optional

from urlobject import URLObject

from require_matching_label import celery
from require_matching_label.auth import get_github_session
from require_matching_label.events import Event, classify
from require_matching_label.reconcile import Mutation, applicable_rules, handle
from require_matching_label.rules import Rule, get_rules, rules_for_repo
from require_matching_label.tasks import logger
from require_matching_label.tasks.label_tracking import (
    DryRunLabelActions,
    LabelActions,
    LabelChangesFailed,
    LabelFixer,
    item_lock,
)
from require_matching_label.types import EventDict, ItemDict
from require_matching_label.utils import (
    log_check_response,
    log_rate_limit,
    paginated_get,
    retry_get,
    sentry_extra_context,
)


@dataclass
class LabelEventResult:
    """
    Return value from label_event: what we saw, and what we changed.
    """
    event: Event
    rules: List[Rule] = field(default_factory=list)
    labels: FrozenSet[str] = frozenset()
    mutations: List[Mutation] = field(default_factory=list)


@celery.task(bind=True)
def label_event_task(_, raw_event):
    """A bound Celery task to call label_event."""
    try:
        label_event(raw_event)
        log_rate_limit()
    except Exception:
        logger.exception("Couldn't label_event_task")
        raise


def label_event(raw_event: EventDict, actions=None, grace: bool = True) -> LabelEventResult:
    """
    Reconcile the require-matching-label rules for one issue or pull request event.

    The item's labels are read once, every applicable rule is judged against
    that one read, and then the changes are made.  This must be idempotent:
    the same event delivered twice, or a rescan, finds nothing more to do.

    If `grace` is true and the event isn't a label change, we wait for the
    rules' grace period before reading the labels.
    """
    event = classify(raw_event)
    event.validate()
    sentry_extra_context({"item": str(event.item_id)})

    result = LabelEventResult(event=event)
    result.rules = list(applicable_rules(get_rules(), event))
    if not result.rules:
        logger.info(f"{event}: no rules apply")
        return result

    if grace and not event.trigger_label:
        wait = max(rule.grace_period for rule in result.rules)
        if wait:
            logger.info(f"{event}: waiting {wait}s for other labels to arrive")
            grace_sleep(wait)

    actions = actions or LabelActions(event.item_id)
    with item_lock(event.item_id):
        result.labels = actions.fetch_current_labels()
        result.mutations = handle(result.rules, event, result.labels)
        if result.mutations:
            LabelFixer(event, actions).fix(result.mutations)
        else:
            logger.info(f"{event}: labels are already right")
    return result


class PaginateCallback:
    """
    A callback for paginated_get which updates the celery task with URL progress.
    """
    def __init__(self, task, meta):
        self.task = task
        self.meta = meta

    def __call__(self, response):
        if response.ok:
            current_url = URLObject(response.url)
            current_page = int(current_url.query_dict.get("page", 1))
            link_last = response.links.get("last")
            if link_last:
                last_url = URLObject(link_last['url'])
                last_page = int(last_url.query_dict["page"])
            else:
                last_page = current_page
            state_meta = {
                "current_page": current_page,
                "last_page": last_page
            }
            state_meta.update(self.meta)
            self.task.update_state(state='STARTED', meta=state_meta)


@celery.task(bind=True)
def rescan_repository_task(task, repo, dry_run):
    """A bound Celery task to call rescan_repository."""
    meta = {"repo": repo}
    task.update_state(state="STARTED", meta=meta)
    callback = PaginateCallback(task, meta=meta)
    return rescan_repository(repo, dry_run, page_callback=callback)


def synthetic_event(repo: str, item: ItemDict) -> EventDict:
    """
    Make an event payload for an item found by listing a repo.

    Listed items don't say which branch a pull request targets, so pull
    requests are fetched in full.
    """
    org, _, name = repo.partition("/")
    event: EventDict = {
        "action": "rescan",
        "repository": {"full_name": repo, "name": name, "owner": {"login": org}},
    }
    if "pull_request" in item:
        resp = retry_get(get_github_session(), f"/repos/{repo}/pulls/{item['number']}")
        log_check_response(resp)
        event["pull_request"] = resp.json()
    else:
        event["issue"] = item
    return event


def rescan_repository(
        repo: str,
        dry_run: bool = False,
        page_callback=None,
    ) -> Dict:
    """
    Re-scans every open issue and pull request in a repo.

    Arguments:
        repo (str): the "org/repo" to rescan.
        dry_run (bool): if True, don't write to GitHub. Put names of
            action methods and their arguments into the "dry_run_actions" key
            of the return value.

    """
    sentry_extra_context({"repo": repo})

    changed: Dict[int, List[str]] = {}
    errors: Dict[int, str] = {}
    dry_run_actions = {}

    info: Dict = {
        "repo": repo,
        "changed": changed,
        "errors": errors,
    }

    if not rules_for_repo(get_rules(), repo):
        logger.info(f"No rules apply to {repo}, not rescanning")
        return info

    url = f"/repos/{repo}/issues?state=open"
    item: ItemDict
    for item in paginated_get(url, session=get_github_session(), callback=page_callback):
        actions: Optional[DryRunLabelActions] = None
        try:
            event = synthetic_event(repo, item)
            if dry_run:
                actions = DryRunLabelActions(classify(event).item_id)
            result = label_event(event, actions=actions, grace=False)
        except LabelChangesFailed as exc:
            errors[item["number"]] = traceback.format_exc()
            # Some changes may have been made before others failed.
            if exc.applied:
                changed[item["number"]] = [repr(m) for m in exc.applied]
        except Exception:       # pylint: disable=broad-except
            errors[item["number"]] = traceback.format_exc()
        else:
            if result.mutations:
                changed[item["number"]] = [repr(m) for m in result.mutations]
            if actions is not None:
                dry_run_actions[item["number"]] = actions.action_calls

    logger.info(f"Rescanned {repo}: changed {sorted(changed)}, errors on {sorted(errors)}")
    if dry_run_actions:
        info["dry_run_actions"] = dry_run_actions
    return info


def describe_rules(repo: str) -> List[Dict]:
    """JSON-ready descriptions of the rules that could apply in `repo`."""
    return [rule.describe() for rule in rules_for_repo(get_rules(), repo)]
