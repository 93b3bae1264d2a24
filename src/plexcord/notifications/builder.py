from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from .types import Notification, NotificationFragment, PendingGroup


def merge_fragments(items: Sequence[NotificationFragment]) -> Notification:
    """Merge fragments into one notification.

    Display fields come from the first fragment. Descriptions are stacked one
    per line in arrival order; fragments without a description contribute nothing.
    """
    if not items:
        raise ValueError("Cannot build a notification from an empty group")
    lines = [item.description for item in items if item.description]
    return replace(items[0], description="\n".join(lines) if lines else None)


def build_notification(group: PendingGroup) -> Notification:
    return merge_fragments(group.items)
