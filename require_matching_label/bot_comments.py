"""
The bot makes comments on issues and pull requests. This is stuff needed to do it well.
"""

from flask import render_template

# Every notification comment carries this, so we can find our own later.
MISSING_LABEL_INDICATOR = "<!-- comment:missing_label -->"


def missing_label_comment(message: str, user: str = "") -> str:
    """
    Render the notification posted when a rule's marker label is added.

    `message` is the rule's text, `user` is who to address it to.
    """
    return render_template(
        "missing_label_comment.md.j2",
        user=user,
        message=message.strip(),
    )


def is_stale_notification(body: str, message: str) -> bool:
    """
    Is this comment `body` a notification we posted with `message` in it?
    """
    return MISSING_LABEL_INDICATOR in body and message.strip() in body
