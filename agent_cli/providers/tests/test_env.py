"""Tests for layer-wide environment resolution."""

from unittest.mock import patch

import pytest

from ..env import (
    DEFAULT_DISCOVERY_TIMEOUT,
    DEFAULT_MAX_LINE_BYTES,
    DEFAULT_QUEUE_SIZE,
    DEFAULT_TERMINATE_GRACE,
    resolve_discovery_timeout,
    resolve_execution_timeout,
    resolve_max_line_bytes,
    resolve_platform,
    resolve_providers_config_path,
    resolve_queue_size,
    resolve_terminate_grace,
    resolve_wsl_distribution,
)
from ..spawn import Platform


class TestResolveQueueSize:
    """Tests for queue size resolution."""

    def test_default(self):
        """Should return the default when AGENT_CLI_QUEUE_SIZE is not set."""
        with patch.dict('os.environ', {}, clear=True):
            assert resolve_queue_size() == DEFAULT_QUEUE_SIZE

    def test_from_env_var(self):
        with patch.dict('os.environ', {'AGENT_CLI_QUEUE_SIZE': '8'}):
            assert resolve_queue_size() == 8

    def test_invalid_env_var(self):
        """Should fall back to the default for a non-integer value."""
        with patch.dict('os.environ', {'AGENT_CLI_QUEUE_SIZE': 'lots'}):
            assert resolve_queue_size() == DEFAULT_QUEUE_SIZE

    def test_clamped_to_one(self):
        assert resolve_queue_size(0) == 1

    def test_explicit_wins(self):
        with patch.dict('os.environ', {'AGENT_CLI_QUEUE_SIZE': '8'}):
            assert resolve_queue_size(3) == 3


class TestResolveTimeouts:
    """Tests for timeout resolution."""

    def test_discovery_default(self):
        with patch.dict('os.environ', {}, clear=True):
            assert resolve_discovery_timeout() == DEFAULT_DISCOVERY_TIMEOUT

    def test_discovery_from_env_var(self):
        with patch.dict('os.environ', {'AGENT_CLI_DISCOVERY_TIMEOUT': '2.5'}):
            assert resolve_discovery_timeout() == 2.5

    def test_execution_default_is_none(self):
        """Should return None (no timeout) by default."""
        with patch.dict('os.environ', {}, clear=True):
            assert resolve_execution_timeout() is None

    def test_execution_from_env_var(self):
        with patch.dict('os.environ', {'AGENT_CLI_EXECUTION_TIMEOUT': '300'}):
            assert resolve_execution_timeout() == 300.0

    def test_execution_zero_disables(self):
        with patch.dict('os.environ', {'AGENT_CLI_EXECUTION_TIMEOUT': '0'}):
            assert resolve_execution_timeout() is None

    def test_terminate_grace(self):
        with patch.dict('os.environ', {}, clear=True):
            assert resolve_terminate_grace() == DEFAULT_TERMINATE_GRACE
        with patch.dict('os.environ', {'AGENT_CLI_TERMINATE_GRACE': '1'}):
            assert resolve_terminate_grace() == 1.0


class TestResolveMaxLineBytes:
    """Tests for the stdout line limit."""

    def test_default(self):
        with patch.dict('os.environ', {}, clear=True):
            assert resolve_max_line_bytes() == DEFAULT_MAX_LINE_BYTES

    def test_from_env_var(self):
        with patch.dict('os.environ', {'AGENT_CLI_MAX_LINE_BYTES': '4096'}):
            assert resolve_max_line_bytes() == 4096


class TestResolvePlatform:
    """Tests for platform resolution."""

    def test_explicit(self):
        assert resolve_platform("windows") == Platform.WINDOWS

    def test_from_env_var(self):
        with patch.dict('os.environ', {'AGENT_CLI_PLATFORM': 'darwin'}):
            assert resolve_platform() == Platform.MACOS

    def test_invalid_env_var(self):
        with patch.dict('os.environ', {'AGENT_CLI_PLATFORM': 'amiga'}):
            with pytest.raises(ValueError):
                resolve_platform()

    def test_host_platform(self):
        with patch.dict('os.environ', {}, clear=True):
            with patch('sys.platform', 'freebsd13'):
                assert resolve_platform() == Platform.LINUX


class TestResolveStrings:
    """Tests for string settings."""

    def test_wsl_distribution(self):
        with patch.dict('os.environ', {}, clear=True):
            assert resolve_wsl_distribution() is None
        with patch.dict('os.environ', {'AGENT_CLI_WSL_DISTRIBUTION': 'Ubuntu-24.04'}):
            assert resolve_wsl_distribution() == 'Ubuntu-24.04'
            assert resolve_wsl_distribution('Debian') == 'Debian'

    def test_providers_config_path(self):
        with patch.dict('os.environ', {}, clear=True):
            assert resolve_providers_config_path() is None
        with patch.dict('os.environ', {'AGENT_CLI_PROVIDERS_CONFIG': '/etc/agent-cli.yaml'}):
            assert resolve_providers_config_path() == '/etc/agent-cli.yaml'
