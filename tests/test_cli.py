"""Tests for the sandboxdav server CLI argument handling."""

from pathlib import Path

from sandboxdav.cli import apply_overrides, parse_args
from sandboxdav.config import SandboxDavConfig


def test_defaults_leave_config_alone():
    config = SandboxDavConfig()
    args = parse_args([])
    assert args.config == Path("sandboxdav.yaml")
    assert apply_overrides(config, args) == []
    assert config.server.port == 1900
    assert config.server.log_format == "text"


def test_flags_override_server_section():
    config = SandboxDavConfig()
    args = parse_args(
        ["--host", "127.0.0.1", "--port", "8080", "--log-format", "json", "--shutdown-timeout", "5"]
    )
    applied = apply_overrides(config, args)
    assert applied == ["host", "port", "log_format", "shutdown_timeout"]
    assert config.server.host == "127.0.0.1"
    assert config.server.port == 8080
    assert config.server.log_format == "json"
    assert config.server.shutdown_timeout == 5
    assert config.server.log_level == "INFO"
