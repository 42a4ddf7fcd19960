"""Tests for the server entry point."""

from __future__ import annotations

from unittest.mock import patch

import pytest

import spectator_mcp.server as server_mod
from spectator_mcp.config import update_config


class TestMain:
    def test_stdio_default(self):
        with patch.object(server_mod.app, "run") as run:
            server_mod.main()
        run.assert_called_once_with()

    @pytest.mark.parametrize("transport, expected", [("http", "streamable-http"), ("sse", "sse")])
    def test_network_transports(self, transport, expected):
        update_config(transport=transport, http_host="0.0.0.0", http_port=9100)
        with patch.object(server_mod.app, "run") as run:
            server_mod.main()
        run.assert_called_once_with(transport=expected, host="0.0.0.0", port=9100)
