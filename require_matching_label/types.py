"""Types specific to require_matching_label."""

from __future__ import annotations

import dataclasses
from typing import Dict

# A GitHub webhook event payload, parsed from JSON.
EventDict = Dict

# An issue or pull request as described by a JSON object.
ItemDict = Dict

# An issue comment as described by a JSON object.
CommentDict = Dict


@dataclasses.dataclass(frozen=True)
class ItemId:
    """An id of an issue or pull request: a repo full_name and a number."""
    full_name: str
    number: int

    @classmethod
    def from_parts(cls, org: str, repo: str, number: int) -> ItemId:
        return cls(f"{org}/{repo}", number)

    def __str__(self):
        return f"{self.full_name}#{self.number}"
