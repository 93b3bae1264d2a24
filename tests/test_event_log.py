from __future__ import annotations

import json

from plexcord.persistence import RawEventLog


def test_records_are_numbered_from_one(tmp_path) -> None:
    log = RawEventLog(tmp_path / "logs")

    first = log.record({"event": "library.new"})
    second = log.record({"event": "media.play"}, b"jpeg-bytes")

    assert (first, second) == (1, 2)
    assert json.loads((tmp_path / "logs" / "req1.json").read_text(encoding="utf-8")) == {"event": "library.new"}
    assert not (tmp_path / "logs" / "thumb1.jpeg").exists()
    assert (tmp_path / "logs" / "thumb2.jpeg").read_bytes() == b"jpeg-bytes"


def test_numbering_resumes_after_existing_files(tmp_path) -> None:
    (tmp_path / "req3.json").write_text("{}", encoding="utf-8")
    (tmp_path / "req10.json").write_text("{}", encoding="utf-8")
    (tmp_path / "notes.json").write_text("{}", encoding="utf-8")

    log = RawEventLog(tmp_path)

    assert log.last_number == 10
    assert log.record({}) == 11


def test_write_failure_is_logged_not_raised(tmp_path, caplog) -> None:
    log = RawEventLog(tmp_path)

    with caplog.at_level("ERROR"):
        number = log.record({"unserialisable": object()})

    assert number == 1
    assert "Failed to write raw event log" in caplog.text
