"""Tests of tasks/github.py:rescan_repository"""

import pytest

from require_matching_label.tasks.github import label_event, rescan_repository


@pytest.fixture
def label_event_fn(mocker):
    """A mock for label_event that wraps the real function."""
    return mocker.patch(
        "require_matching_label.tasks.github.label_event",
        wraps=label_event,
    )


@pytest.fixture
def rescannable_repo(fake_github):
    """
    Make a fake repo full of issues and pull requests to rescan.
    """
    repo = fake_github.make_repo("k8s", "t-i")
    # Right already.
    repo.make_issue(number=101, labels=["sig/node", "cat"])
    # Needs needs-cat, with a comment.
    repo.make_issue(user="tusbar", number=102, labels=["sig/node"])
    # Needs needs-kind.
    repo.make_pull_request(number=103, branch="master", labels=["lgtm"])
    # Needs needs-kind added and needs-cat removed.
    repo.make_pull_request(number=104, branch="meow", labels=["needs-cat", "floof"])
    # Closed items are left alone.
    repo.make_issue(number=105, state="closed")
    return repo


def test_rescan_repository(rescannable_repo, label_event_fn, grace_sleep):
    ret = rescan_repository(rescannable_repo.full_name)
    errors = ret["errors"]
    for err in errors.values():
        print(err)
    assert not errors

    nums = [c.args[0].get("issue", c.args[0].get("pull_request"))["number"] for c in label_event_fn.call_args_list]
    assert nums == [101, 102, 103, 104]
    assert ret["changed"] == {
        102: ["AddLabel(name='needs-cat')", "PostComment(text='Meow?')"],
        103: ["AddLabel(name='needs-kind')"],
        104: ["AddLabel(name='needs-kind')", "RemoveLabel(name='needs-cat', notification='Meow?')"],
    }
    assert "dry_run_actions" not in ret
    # Rescans don't wait for labels to arrive.
    grace_sleep.assert_not_called()

    assert rescannable_repo.get_item(102).labels == {"sig/node", "needs-cat"}
    assert rescannable_repo.get_item(103).labels == {"lgtm", "needs-kind"}
    assert rescannable_repo.get_item(104).labels == {"floof", "needs-kind"}
    assert rescannable_repo.get_item(105).labels == set()

    # If we rescan again, nothing should happen.
    ret = rescan_repository(rescannable_repo.full_name)
    assert not ret["changed"]
    assert not ret["errors"]


def test_rescan_repository_dry_run(rescannable_repo, fake_github):
    ret = rescan_repository(rescannable_repo.full_name, dry_run=True)

    # We shouldn't have made any writes to GitHub because dry_run=True.
    fake_github.assert_readonly()
    assert rescannable_repo.get_item(103).labels == {"lgtm"}

    # "changed" still says what would have changed.
    assert sorted(ret["changed"]) == [102, 103, 104]

    actions = {k: [name for name, _ in actions] for k, actions in ret["dry_run_actions"].items()}
    assert actions == {
        101: [],
        102: ["add_label", "post_comment"],
        103: ["add_label"],
        104: ["add_label", "remove_label", "prune_stale_notifications"],
    }


def test_rescan_collects_errors(rescannable_repo, fake_github):
    fake_github.broken_labels.add("needs-kind")
    ret = rescan_repository(rescannable_repo.full_name)
    assert sorted(ret["errors"]) == [103, 104]
    assert "Some label changes failed" in ret["errors"][103]
    # What did change is still reported, even where something else failed.
    assert ret["changed"] == {
        102: ["AddLabel(name='needs-cat')", "PostComment(text='Meow?')"],
        104: ["RemoveLabel(name='needs-cat', notification='Meow?')"],
    }
    # Errors on some items don't stop the others.
    assert rescannable_repo.get_item(102).labels == {"sig/node", "needs-cat"}
    assert rescannable_repo.get_item(104).labels == {"floof"}


def test_rescan_repo_with_no_rules(fake_github):
    fake_github.make_repo("fejtaverse", "repo").make_issue(labels=["lgtm"])
    ret = rescan_repository("fejtaverse/repo")
    assert ret == {"repo": "fejtaverse/repo", "changed": {}, "errors": {}}
    assert fake_github.requests_made() == []
