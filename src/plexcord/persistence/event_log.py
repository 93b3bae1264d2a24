from __future__ import annotations

import json
import logging
import re
import threading
from pathlib import Path
from typing import Any

from ..utils import ensure_directory

LOGGER = logging.getLogger(__name__)

_REQUEST_FILE = re.compile(r"^req(\d+)\.json$")


class RawEventLog:
    """Numbered on-disk copies of accepted webhook requests.

    Each request is written as ``req{n}.json`` with its thumbnail, when present,
    as ``thumb{n}.jpeg``. Numbering resumes after the highest file already in
    the directory so restarts never overwrite earlier logs.
    """

    def __init__(self, directory: Path) -> None:
        self._directory = directory
        self._lock = threading.Lock()
        ensure_directory(directory)
        self._last = self._highest_existing()

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def last_number(self) -> int:
        return self._last

    def record(self, payload: Any, thumb: bytes | None = None) -> int:
        """Persist one request and return its number. Write failures are logged, never raised."""
        with self._lock:
            self._last += 1
            number = self._last

        request_path = self._directory / f"req{number}.json"
        try:
            with request_path.open("w", encoding="utf-8") as handle:
                json.dump(payload, handle, ensure_ascii=False, indent=2)
        except (OSError, TypeError, ValueError) as exc:
            LOGGER.error("Failed to write raw event log %s: %s", request_path, exc)

        if thumb:
            thumb_path = self._directory / f"thumb{number}.jpeg"
            try:
                thumb_path.write_bytes(thumb)
            except OSError as exc:
                LOGGER.error("Failed to write thumbnail %s: %s", thumb_path, exc)

        return number

    def _highest_existing(self) -> int:
        highest = 0
        for path in self._directory.glob("req*.json"):
            match = _REQUEST_FILE.match(path.name)
            if match:
                highest = max(highest, int(match.group(1)))
        return highest
