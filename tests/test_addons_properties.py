"""
Property-based tests for the add-on registry, the event bus and the
hosts-file block.
"""

import tempfile
from io import StringIO
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from fakes import FailingAddon, StaticAddon
from sld_core.addons import (
    Addon,
    AddonRegistry,
    ConfigContributor,
    ExampleProxyAddon,
    default_registry,
)
from sld_core.audit_logger import AuditLogger
from sld_core.enums import AddonStatus, EventType, LogLevel
from sld_core.events import EventBus
from sld_core.exceptions import AddonError
from sld_core.hosts_file import (
    BLOCK_END,
    BLOCK_START,
    managed_domains,
    render_block,
    replace_block,
    strip_block,
)
from sld_core.state_store import StateStore


# Strategies for generating valid test data

@st.composite
def domain_strategy(draw) -> str:
    label = draw(st.text(alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789-"), min_size=1, max_size=12))
    return draw(st.sampled_from([f"{label}.test", f"*.{label}", f"{label}.dev"]))


@st.composite
def hosts_content_strategy(draw) -> str:
    """Generate hosts files without managed markers."""
    lines = draw(st.lists(
        st.text(alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789 .:#"), max_size=40),
        max_size=8,
    ))
    return "\n".join(lines) + ("\n" if lines else "")


class TestAddonRegistryProperty:
    def test_builtin_addon_satisfies_protocols(self) -> None:
        addon = ExampleProxyAddon()
        assert isinstance(addon, Addon)
        assert isinstance(addon, ConfigContributor)
        assert not isinstance(object(), ConfigContributor)

    def test_registry_sorted_by_id(self) -> None:
        registry = AddonRegistry()
        registry.register(StaticAddon("zeta", {}))
        registry.register(StaticAddon("alpha", {}))
        assert [a.id for a in registry.all()] == ["alpha", "zeta"]

    def test_example_proxy_contributes_only_while_running(self) -> None:
        addon = ExampleProxyAddon(proxy_target="http://127.0.0.1:4000")
        assert addon.status() == AddonStatus.STOPPED
        assert addon.nginx_config() == {}

        addon.start()
        fragments = addon.nginx_config()
        assert list(fragments) == ["api-proxy"]
        fragment = fragments["api-proxy"]
        assert "proxy_pass http://127.0.0.1:4000;" in fragment
        assert fragment.startswith("server {\n    listen 127.0.0.1:8099;")
        assert fragment.index("location /api/") > fragment.index("server {")
        assert fragment.count("{") == fragment.count("}")

    def test_set_enabled_persists_flag(self) -> None:
        registry = default_registry()
        with tempfile.TemporaryDirectory() as tmpdir:
            store = StateStore(Path(tmpdir) / "state.json")

            assert registry.set_enabled("example-proxy", True, store)
            assert store.get_enabled_addons() == ["example-proxy"]
            assert registry.get("example-proxy").status() == AddonStatus.RUNNING

            assert registry.set_enabled("example-proxy", False, store)
            assert store.get_enabled_addons() == []

    def test_unknown_id_returns_false(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = StateStore(Path(tmpdir) / "state.json")
            assert AddonRegistry().set_enabled("missing", True, store) is False
            assert store.get_enabled_addons() == []

    def test_failed_start_leaves_flag_unchanged(self) -> None:
        registry = AddonRegistry()
        registry.register(FailingAddon())
        with tempfile.TemporaryDirectory() as tmpdir:
            store = StateStore(Path(tmpdir) / "state.json")

            with pytest.raises(AddonError) as exc_info:
                registry.set_enabled("broken", True, store)

            assert exc_info.value.code == "start_failed"
            assert store.get_enabled_addons() == []

    def test_start_enabled_reports_failures(self) -> None:
        registry = AddonRegistry()
        registry.register(FailingAddon())
        registry.register(ExampleProxyAddon())
        with tempfile.TemporaryDirectory() as tmpdir:
            store = StateStore(Path(tmpdir) / "state.json")
            store.set_addon_enabled("broken", True)
            store.set_addon_enabled("example-proxy", True)

            failed = registry.start_enabled(store)

            assert failed == ["broken"]
            assert registry.get("example-proxy").status() == AddonStatus.RUNNING

    @given(fragments=st.dictionaries(
        st.text(alphabet=st.sampled_from("abcdefghij-"), min_size=1, max_size=8),
        st.text(max_size=30),
        max_size=5,
    ))
    @settings(max_examples=50)
    def test_fragments_sorted_by_name(self, fragments: dict) -> None:
        """
        *For any* fragment mapping, collected fragments SHALL appear once
        each, ordered by fragment name.
        """
        registry = AddonRegistry()
        registry.register(StaticAddon("alpha", fragments))

        collected, warnings = registry.collect_fragments(["alpha"])

        assert warnings == []
        assert [name for _, name, _ in collected] == sorted(fragments)
        assert all(text == fragments[name] for _, name, text in collected)

    def test_malformed_fragments_become_warnings(self) -> None:
        registry = AddonRegistry()
        registry.register(StaticAddon("alpha", {"ok": "# ok", "bad": 42}))
        registry.register(StaticAddon("beta", ["not", "a", "dict"]))
        registry.register(FailingAddon())

        collected, warnings = registry.collect_fragments(["alpha", "beta", "broken"])

        assert collected == [("Alpha", "ok", "# ok")]
        assert len(warnings) == 3


class TestEventBusProperty:
    def test_publish_reaches_subscribers(self) -> None:
        bus = EventBus()
        received = []
        bus.subscribe(EventType.SITES_UPDATED, lambda topic, payload: received.append((topic, payload)))

        delivered = bus.publish(EventType.SITES_UPDATED, "park")

        assert delivered == 1
        assert received == [(EventType.SITES_UPDATED, "park")]
        assert bus.publish(EventType.CONFIG_CHANGED) == 0

    def test_unsubscribe(self) -> None:
        bus = EventBus()
        unsubscribe = bus.subscribe(EventType.CONFIG_CHANGED, lambda topic, payload: None)
        assert bus.subscriber_count(EventType.CONFIG_CHANGED) == 1

        unsubscribe()
        unsubscribe()

        assert bus.subscriber_count(EventType.CONFIG_CHANGED) == 0

    def test_failing_handler_is_logged_and_isolated(self) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        bus = EventBus(logger)
        received = []

        def explode(topic, payload):
            raise RuntimeError("handler bug")

        bus.subscribe(EventType.ADDON_STARTED, explode)
        bus.subscribe(EventType.ADDON_STARTED, lambda topic, payload: received.append(payload))

        delivered = bus.publish(EventType.ADDON_STARTED, "example-proxy")

        assert delivered == 1
        assert received == ["example-proxy"]
        errors = [e for e in logger.entries if e.level == LogLevel.ERROR]
        assert errors[0].data["error_type"] == "RuntimeError"


class TestHostsBlockProperty:
    """The managed block is replaced in place; other lines survive."""

    @given(content=hosts_content_strategy(), domains=st.lists(domain_strategy(), max_size=6))
    @settings(max_examples=100)
    def test_foreign_lines_preserved(self, content: str, domains: list[str]) -> None:
        """
        *For any* hosts file and domains, replacing the block SHALL keep every
        line outside it.
        """
        updated = replace_block(content, domains)
        assert strip_block(updated) == strip_block(content)
        assert updated.count(BLOCK_START) == 1
        assert updated.count(BLOCK_END) == 1

    @given(content=hosts_content_strategy(), domains=st.lists(domain_strategy(), max_size=6))
    @settings(max_examples=100)
    def test_replace_is_idempotent(self, content: str, domains: list[str]) -> None:
        """
        *For any* hosts file, replacing the block twice with the same domains
        SHALL give the same text as replacing it once.
        """
        once = replace_block(content, domains)
        assert replace_block(once, domains) == once

    @given(domains=st.lists(domain_strategy(), max_size=8))
    @settings(max_examples=100)
    def test_managed_domains_skip_wildcards_and_duplicates(self, domains: list[str]) -> None:
        """
        *For any* domain list, the block SHALL hold each non-wildcard domain
        once, in first-seen order.
        """
        expected = list(dict.fromkeys(d for d in domains if not d.startswith("*")))
        assert managed_domains(render_block(domains)) == expected

    def test_block_lines(self) -> None:
        assert render_block(["blog.test"]) == (
            "# SLD-START\n127.0.0.1 blog.test\n::1 blog.test\n# SLD-END\n"
        )

    def test_replacing_old_block(self) -> None:
        content = "127.0.0.1 localhost\n\n# SLD-START\n127.0.0.1 old.test\n# SLD-END\n"
        updated = replace_block(content, ["new.test"])
        assert "old.test" not in updated
        assert updated.startswith("127.0.0.1 localhost\n")
        assert managed_domains(updated) == ["new.test"]

    def test_empty_file(self) -> None:
        assert replace_block("", []) == "# SLD-START\n# SLD-END\n"
