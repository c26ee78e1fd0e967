"""
Get information from GitHub about the bot and the items it works on.
"""

from typing import Dict, Iterable

from require_matching_label.auth import get_github_session
from require_matching_label.types import CommentDict, ItemId
from require_matching_label.utils import log_check_response, memoize, paginated_get


@memoize
def github_whoami() -> Dict:
    """Get the GitHub user data for the bot's own account."""
    resp = get_github_session().get("/user")
    log_check_response(resp)
    return resp.json()


def get_bot_username() -> str:
    """What is the username of the bot?"""
    me = github_whoami()
    return me["login"]


def get_bot_comments(item_id: ItemId) -> Iterable[CommentDict]:
    """Find all the comments the bot has made on an issue or pull request."""
    my_username = get_bot_username()
    comment_url = f"/repos/{item_id.full_name}/issues/{item_id.number}/comments"
    for comment in paginated_get(comment_url, session=get_github_session()):
        # I only care about comments I made
        if comment["user"]["login"] == my_username:
            yield comment
