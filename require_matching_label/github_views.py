"""
These are the views that process webhook events coming from Github.
"""

import logging
from typing import cast

from flask import current_app as app
from flask import Blueprint, jsonify, request

from require_matching_label.tasks.github import (
    describe_rules, label_event_task, rescan_repository, rescan_repository_task,
)
from require_matching_label.utils import (
    is_valid_payload, queue_task, requires_auth, sentry_extra_context
)

github_bp = Blueprint('github_views', __name__)
logger = logging.getLogger(__name__)


@github_bp.route('/hook-receiver', methods=('POST',))
def hook_receiver():
    """
    Process incoming GitHub webhook events.

    1.  Make sure the payload hashes to the proper signature. If not,
        reject the request with http status of 403.
    2.  Send a job to the queue with details of the event.
    3.  Respond with http status 202.

    Returns:
        A response, or Tuple[str, int]: Message payload and HTTP status code
    """
    signature = request.headers.get("X-Hub-Signature-256") or request.headers.get("X-Hub-Signature")
    secret = app.config.get('GITHUB_WEBHOOKS_SECRET')
    if not is_valid_payload(secret, signature, request.data):   # type: ignore[arg-type]
        msg = "Rejecting because signature doesn't match!"
        logger.info(msg)
        return msg, 403

    event = request.get_json()

    action = event.get("action")
    repo = event.get("repository", {}).get("full_name")
    who = event.get("sender", {}).get("login", "someone")
    keys = set(event.keys()) - {"action", "sender", "repository", "organization", "installation"}
    logger.info(f"Incoming GitHub event: {repo=!r}, {action=!r}, {who=!r}, keys: {' '.join(sorted(keys))}")

    sentry_extra_context({"event": event})

    # Actions and keys we get:
    #   Opening a PR: action=opened, number, pull_request
    #   Labeling a PR: action=labeled, label, number, pull_request
    #   Pushing to a PR: action=synchronize, before, after, number, pull_request
    #   Opening an issue: action=opened, issue
    #   Labeling an issue: action=labeled, issue, label
    #   Labeling a PR also sends an issues event: action=labeled, issue, label
    #       {"issue": {"pull_request": {...}}}

    match event:
        case {"pull_request": _}:
            return handle_item_event(event, PR_ACTIONS)

        case {"comment": _}:
            # Comments don't change labels.
            return "No thanks", 202

        case {"issue": {"pull_request": _}}:
            # GitHub sends a pull_request event for this too.
            return "Handled as a pull request", 202

        case {"issue": _}:
            return handle_item_event(event, ISSUE_ACTIONS)

        case {"zen": _, "hook": _}:
            # this is a ping
            logger.info(f"ping from {repo}")
            return "PONG"

        case _:
            # Ignore all other events.
            return "Thank you", 202


# Actions on pull requests that we'll act on.
PR_ACTIONS = {
    "opened",
    "reopened",
    "synchronize",
    "labeled",
    "unlabeled",
}

# Actions on issues that we'll act on.
ISSUE_ACTIONS = {
    "opened",
    "reopened",
    "labeled",
    "unlabeled",
}

def handle_item_event(event, actions):
    """Handle a webhook event about an issue or a pull request."""

    item = event.get("pull_request") or event["issue"]
    repo = event["repository"]["full_name"]
    action = event["action"]

    activity = f"{repo} #{item['number']} {action!r}"
    if action in actions:
        logger.info(f"{activity}, processing...")
        return queue_task(label_event_task, event)
    else:
        logger.info(f"{activity}, ignoring...")
        return "Nothing for me to do", 200


@github_bp.route("/rescan", methods=("POST",))
@requires_auth
def rescan():
    """
    Re-scan a GitHub repository, reconciling labels on every open issue and
    pull request.

    Note that this rescan functionality is one reason why
    :func:`~require_matching_label.tasks.github.label_event`
    must be idempotent. It could run many times over the same item.
    """
    repo = cast(str, request.form.get("repo", ""))
    if not repo:
        resp = jsonify({"error": "Repo required"})
        resp.status_code = 400
        return resp
    inline = bool(request.form.get("inline", False))
    dry_run = bool(request.form.get("dry_run", False))

    if inline:
        return jsonify(rescan_repository(repo, dry_run=dry_run))
    else:
        return queue_task(rescan_repository_task, repo, dry_run=dry_run)


@github_bp.route("/rules", methods=("GET",))
@requires_auth
def rules():
    """
    Show the rules that apply to a repo, as JSON.
    """
    repo = request.args.get("repo", "")
    if "/" not in repo:
        resp = jsonify({"error": "Repo required, as org/repo"})
        resp.status_code = 400
        return resp
    return jsonify({"repo": repo, "rules": describe_rules(repo)})
