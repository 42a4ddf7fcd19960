"""Tests for configuration parsing and validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

import spectator_mcp.config as cfg_mod
from spectator_mcp.config import DEFAULT_RESTRICTED_HOSTS, ServerConfig, get_config, update_config


class TestFromEnv:
    def test_defaults(self, monkeypatch):
        for name in ("SPECTATOR_RESTRICTED_HOSTS", "SPECTATOR_POLL_INTERVAL", "SPECTATOR_TRANSPORT"):
            monkeypatch.delenv(name, raising=False)
        cfg = ServerConfig.from_env()
        assert cfg.gemini_api_key == "test-key-not-real"
        assert cfg.poll_interval_seconds == 4.0
        assert cfg.restricted_hosts == list(DEFAULT_RESTRICTED_HOSTS)
        assert cfg.transport == "stdio"
        assert cfg.enforce_media_limit is False

    def test_restricted_hosts_parsed(self, monkeypatch):
        monkeypatch.setenv("SPECTATOR_RESTRICTED_HOSTS", " Example.com, .clips.test ,,")
        cfg = ServerConfig.from_env()
        assert cfg.restricted_hosts == ["example.com", "clips.test"]

    def test_flags(self, monkeypatch):
        monkeypatch.setenv("SPECTATOR_ENFORCE_MEDIA_LIMIT", "true")
        monkeypatch.setenv("SPECTATOR_REDIRECT_ONLY", "1")
        monkeypatch.setenv("SPECTATOR_ALLOW_PRIVATE_HOSTS", "no")
        cfg = ServerConfig.from_env()
        assert cfg.enforce_media_limit is True
        assert cfg.redirect_only is True
        assert cfg.allow_private_hosts is False

    def test_api_base_trailing_slash_stripped(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_BASE", "https://gemini.test/")
        assert ServerConfig.from_env().api_base_url == "https://gemini.test"

    def test_transport_normalized(self, monkeypatch):
        monkeypatch.setenv("SPECTATOR_TRANSPORT", "HTTP")
        assert ServerConfig.from_env().transport == "http"


class TestValidation:
    def test_rejects_zero_poll_interval(self):
        with pytest.raises(ValidationError):
            ServerConfig(poll_interval_seconds=0)

    def test_rejects_jpeg_quality_out_of_range(self):
        with pytest.raises(ValidationError):
            ServerConfig(jpeg_quality=101)

    def test_rejects_unknown_transport(self):
        with pytest.raises(ValidationError, match="Invalid transport"):
            ServerConfig(transport="carrier-pigeon")

    def test_media_warn_bytes(self):
        assert ServerConfig(media_warn_mb=2).media_warn_bytes == 2 * 1024 * 1024


class TestSingleton:
    def test_get_config_caches(self):
        assert get_config() is get_config()

    def test_update_config_revalidates(self):
        cfg = update_config(max_sessions=3)
        assert cfg.max_sessions == 3
        assert cfg_mod._config is cfg
        with pytest.raises(ValidationError):
            update_config(max_sessions=0)
