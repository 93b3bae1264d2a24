"""plexcord core package.

Relays Plex webhook events to Discord webhooks. The package is organized into
focused modules:

- **config**: YAML configuration loading into typed settings
- **plex**: Plex webhook payload models, translation into relay events, and the
  HTTP receiver
- **notifications**: the coalescing table, scheduler loop, notification builder,
  fan-out dispatcher and Discord transport
- **persistence**: raw event log written for every accepted request
- **cli**: command line entry point

The main entry point for relaying is ``CoalescingScheduler``.
"""

from .notifications import CoalescingScheduler
from .version import __version__

__all__ = [
    "__version__",
    "CoalescingScheduler",
]
