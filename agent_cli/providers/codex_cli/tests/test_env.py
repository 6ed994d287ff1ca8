"""Tests for Codex CLI environment resolution."""

import pytest
from unittest.mock import patch

from ...errors import InvalidQueryError
from ..env import resolve_cli_path, resolve_sandbox


class TestResolveCliPath:
    """Tests for CLI path resolution."""

    def test_no_env_var(self):
        """Should return None when AGENT_CLI_CODEX_PATH not set."""
        with patch.dict('os.environ', {}, clear=True):
            assert resolve_cli_path() is None

    def test_from_env_var(self):
        with patch.dict('os.environ', {'AGENT_CLI_CODEX_PATH': '/opt/codex'}):
            assert resolve_cli_path() == '/opt/codex'


class TestResolveSandbox:
    """Tests for sandbox mode resolution."""

    def test_no_env_var(self):
        with patch.dict('os.environ', {}, clear=True):
            assert resolve_sandbox() is None

    def test_from_env_var(self):
        with patch.dict('os.environ', {'AGENT_CLI_CODEX_SANDBOX': 'read-only'}):
            assert resolve_sandbox() == 'read-only'

    def test_explicit_wins(self):
        with patch.dict('os.environ', {'AGENT_CLI_CODEX_SANDBOX': 'read-only'}):
            assert resolve_sandbox('workspace-write') == 'workspace-write'

    def test_invalid(self):
        with pytest.raises(InvalidQueryError):
            resolve_sandbox('everything')
