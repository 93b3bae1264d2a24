from .event_log import RawEventLog

__all__ = ["RawEventLog"]
