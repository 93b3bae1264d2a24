from __future__ import annotations

import argparse
import logging
from pathlib import Path

import pytest

from plexcord import cli


def _write_config(path: Path, *, endpoints: bool = True) -> Path:
    text = "relay:\n  debounce_seconds: 3\n"
    if endpoints:
        text += "endpoints:\n  - name: main\n    url: https://discord.com/api/webhooks/1/secret-token\n"
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def printed(monkeypatch) -> list:
    captured: list = []
    monkeypatch.setattr("plexcord.cli.CONSOLE.print", lambda *args, **kwargs: captured.extend(args))
    return captured


def test_validate_config_succeeds(tmp_path, printed) -> None:
    args = argparse.Namespace(config=_write_config(tmp_path / "plexcord.yaml"))

    assert cli.run_validate_config(args) == 0
    assert any("passed validation" in str(item) for item in printed)


def test_validate_config_requires_endpoints(tmp_path, printed) -> None:
    args = argparse.Namespace(config=_write_config(tmp_path / "plexcord.yaml", endpoints=False))

    assert cli.run_validate_config(args) == 1
    assert any("No endpoints configured" in str(item) for item in printed)


def test_validate_config_reports_errors(tmp_path, printed) -> None:
    config_path = tmp_path / "plexcord.yaml"
    config_path.write_text("relay:\n  overflow_policy: nope\n", encoding="utf-8")

    assert cli.run_validate_config(argparse.Namespace(config=config_path)) == 1
    assert any("relay.overflow_policy" in str(item) for item in printed)


def test_validate_config_missing_file(tmp_path, printed) -> None:
    assert cli.run_validate_config(argparse.Namespace(config=tmp_path / "absent.yaml")) == 1
    assert any("Config file not found" in str(item) for item in printed)


def test_config_table_redacts_webhook_tokens(tmp_path) -> None:
    from plexcord.config import load_config
    from rich.console import Console

    config = load_config(_write_config(tmp_path / "plexcord.yaml"))
    console = Console(record=True, width=120)
    console.print(cli.render_config_table(config))
    output = console.export_text()

    assert "discord.com" in output
    assert "secret-token" not in output


def test_serve_refuses_to_start_without_endpoints(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr("plexcord.cli.configure_logging", lambda *args, **kwargs: None)
    args = argparse.Namespace(
        config=_write_config(tmp_path / "plexcord.yaml", endpoints=False),
        verbose=False,
        log_level=None,
        console_level=None,
        log_file=None,
    )

    assert cli.run_serve(args) == 1


def test_parser_defaults_to_serve(tmp_path) -> None:
    args = cli.build_parser().parse_args(["--config", str(tmp_path / "x.yaml")])

    assert args.command == "serve"
    assert args.func is cli.run_serve


def test_parser_validate_config_command() -> None:
    args = cli.build_parser().parse_args(["validate-config"])

    assert args.func is cli.run_validate_config


def test_configure_logging_writes_log_file(tmp_path) -> None:
    log_file = tmp_path / "logs" / "plexcord.log"
    root = logging.getLogger()
    previous_handlers = list(root.handlers)
    previous_level = root.level
    try:
        cli.configure_logging(logging.DEBUG, console_level=logging.WARNING, log_file=log_file)
        logging.getLogger("plexcord.test").debug("hello file")
        for handler in root.handlers:
            handler.flush()
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in previous_handlers:
            root.addHandler(handler)
        root.setLevel(previous_level)

    assert "hello file" in log_file.read_text(encoding="utf-8")


def test_resolve_level_rejects_unknown_names() -> None:
    with pytest.raises(ValueError):
        cli._resolve_level("chatty", logging.INFO)
