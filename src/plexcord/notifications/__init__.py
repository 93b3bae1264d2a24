"""
Coalescing and fan-out delivery for plexcord.

Public API:
    - Event: one ingested unit of work, keyed for coalescing
    - NotificationFragment: embed-shaped content merged into notifications
    - CoalescingTable: pending groups with a deadline heap
    - CoalescingScheduler: the control loop owning the table
    - build_notification: merges a pending group into one notification
    - FanOutDispatcher: concurrent delivery to every endpoint
    - DiscordTransport: single-attempt Discord webhook client
"""

from __future__ import annotations

# Core types
from .types import (
    DeliveryResult,
    DeliveryTransport,
    EmbedAuthor,
    EmbedField,
    EmbedFooter,
    Event,
    Notification,
    NotificationFragment,
    PendingGroup,
)

from .builder import build_notification, merge_fragments
from .discord import DiscordTransport, build_session
from .dispatcher import FanOutDispatcher
from .scheduler import CoalescingScheduler, IngestionClosed, IngestionQueueFull
from .table import CoalescingTable, CoalescingTableFull

__all__ = [
    # Core types
    "DeliveryResult",
    "DeliveryTransport",
    "EmbedAuthor",
    "EmbedField",
    "EmbedFooter",
    "Event",
    "Notification",
    "NotificationFragment",
    "PendingGroup",
    # Coalescing
    "CoalescingTable",
    "CoalescingTableFull",
    "CoalescingScheduler",
    "IngestionClosed",
    "IngestionQueueFull",
    # Building and delivery
    "build_notification",
    "merge_fragments",
    "FanOutDispatcher",
    "DiscordTransport",
    "build_session",
]
