"""Tests for ProviderRegistry."""

import threading

import pytest

from ..errors import ConfigurationError, ModelNotServedError, ProviderNotFoundError
from ..provider import CLIProvider
from ..registry import ProviderRegistry
from ..spawn import Platform
from .fakes import ScriptBackend, fast_settings


def factory(name, patterns=("test-*",)):
    def create() -> CLIProvider:
        backend = ScriptBackend("pass", name=name, model_patterns=patterns)
        return CLIProvider(backend, platform=Platform.LINUX, settings=fast_settings())
    return create


class TestRegister:
    """Tests for registration and lookup."""

    def test_register_and_get(self):
        registry = ProviderRegistry()
        provider = registry.register("alpha", factory("alpha"))
        assert registry.get_by_name("alpha") is provider
        assert "alpha" in registry
        assert len(registry) == 1

    def test_unknown_name(self):
        registry = ProviderRegistry()
        registry.register("alpha", factory("alpha"))
        with pytest.raises(ProviderNotFoundError) as exc_info:
            registry.get_by_name("beta")
        assert exc_info.value.available == ["alpha"]
        assert isinstance(exc_info.value, ConfigurationError)

    def test_name_mismatch(self):
        with pytest.raises(ValueError):
            ProviderRegistry().register("alpha", factory("beta"))

    def test_replace_keeps_position(self):
        registry = ProviderRegistry()
        registry.register("alpha", factory("alpha"))
        registry.register("beta", factory("beta"))
        replacement = registry.register("alpha", factory("alpha", patterns=("new-*",)))

        assert registry.names() == ["alpha", "beta"]
        assert registry.get_by_name("alpha") is replacement
        assert registry.get_for_model("new-model") is replacement

    def test_unregister(self):
        registry = ProviderRegistry()
        registry.register("alpha", factory("alpha"))
        assert registry.unregister("alpha")
        assert not registry.unregister("alpha")
        assert len(registry) == 0

    def test_entries_expose_patterns(self):
        registry = ProviderRegistry()
        registry.register("alpha", factory("alpha", patterns=("a-*", "alpha")))
        assert registry.entries()[0].model_patterns == ("a-*", "alpha")


class TestGetForModel:
    """Tests for model routing."""

    def test_first_match_in_registration_order(self):
        registry = ProviderRegistry()
        first = registry.register("first", factory("first", patterns=("shared-*",)))
        registry.register("second", factory("second", patterns=("shared-*", "only-second")))

        assert registry.get_for_model("shared-model") is first
        assert registry.get_for_model("only-second").name == "second"

    def test_case_insensitive(self):
        registry = ProviderRegistry()
        registry.register("alpha", factory("alpha", patterns=("sonnet*",)))
        assert registry.get_for_model("Sonnet-4").name == "alpha"

    def test_not_served(self):
        registry = ProviderRegistry()
        registry.register("alpha", factory("alpha"))
        with pytest.raises(ModelNotServedError):
            registry.get_for_model("llama-3")

    def test_empty_registry(self):
        registry = ProviderRegistry()
        assert registry.list_all() == []
        with pytest.raises(ModelNotServedError):
            registry.get_for_model("sonnet")


class TestSnapshot:
    """Tests for lookups during concurrent registration."""

    def test_readers_see_consistent_snapshots(self):
        registry = ProviderRegistry()
        registry.register("base", factory("base"))
        errors = []
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                try:
                    registry.get_by_name("base")
                    names = registry.names()
                    assert names[0] == "base"
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for i in range(50):
            registry.register(f"p{i}", factory(f"p{i}"))
        stop.set()
        for t in threads:
            t.join()

        assert errors == []
        assert len(registry) == 51


class TestDiscover:
    """Tests for bundled provider discovery."""

    def test_bundled_providers(self):
        registry = ProviderRegistry()
        names = registry.discover(settings=fast_settings())
        assert names == ["claude_cli", "codex_cli"]
        assert registry.get_for_model("sonnet").name == "claude_cli"
        assert registry.get_for_model("gpt-5-codex").name == "codex_cli"

    def test_overrides_passed_to_plugins(self):
        registry = ProviderRegistry()
        registry.discover(
            config={"codex_cli": {"cli_path": "/opt/codex", "model_patterns": ["my-*"]}},
            settings=fast_settings(),
        )
        codex = registry.get_by_name("codex_cli")
        assert codex.descriptor.cli_path == "/opt/codex"
        assert registry.get_for_model("my-model") is codex

    def test_discovery_does_not_locate(self):
        registry = ProviderRegistry()
        registry.discover(settings=fast_settings())
        for provider in registry.list_all():
            assert not provider.location_state.is_resolved
            assert not provider.location_state.is_unavailable
