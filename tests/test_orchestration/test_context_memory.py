"""
Tests for sommelier.orchestration.context_memory — SharedContextMemory
========================================================================
"""

from sommelier.orchestration.context_memory import SharedContextMemory, version_hash


class TestSharedContextMemory:
    def test_set_and_get(self) -> None:
        memory = SharedContextMemory()
        memory.set_context("user-preference-agent", "preferences:u1", {"wineType": "red"}, {"source": "test"})

        entry = memory.get_context("user-preference-agent", "preferences:u1")

        assert entry.value == {"wineType": "red"}
        assert entry.metadata == {"source": "test"}
        assert entry.version_hash == version_hash({"wineType": "red"})

    def test_missing_entries_are_none(self) -> None:
        memory = SharedContextMemory()
        assert memory.get_context("nobody", "k") is None
        memory.set_context("a", "k", 1)
        assert memory.get_context("a", "other") is None

    def test_owners_are_isolated(self) -> None:
        memory = SharedContextMemory()
        memory.set_context("a", "k", 1)
        memory.set_context("b", "k", 2)
        assert memory.get_context("a", "k").value == 1
        assert memory.get_context("b", "k").value == 2

    def test_overwrite_keeps_history(self) -> None:
        """History is per key across every owner, oldest first."""
        memory = SharedContextMemory()
        memory.set_context("a", "k", "v1")
        memory.set_context("b", "k", "v2")
        memory.set_context("a", "k", "v3")

        assert memory.get_context("a", "k").value == "v3"
        assert [v.value for v in memory.get_version_history("k")] == ["v1", "v2", "v3"]

    def test_history_is_a_copy(self) -> None:
        memory = SharedContextMemory()
        memory.set_context("a", "k", 1)
        memory.get_version_history("k").clear()
        assert len(memory.get_version_history("k")) == 1

    def test_forget_owner(self) -> None:
        memory = SharedContextMemory()
        memory.set_context("a", "k", 1)
        memory.forget_owner("a")
        assert memory.get_context("a", "k") is None


class TestVersionHash:
    def test_is_sixteen_chars(self) -> None:
        assert len(version_hash({"wineType": "red", "maxPrice": 30})) == 16

    def test_same_value_same_hash(self) -> None:
        assert version_hash(["lamb", "beef"]) == version_hash(["lamb", "beef"])

    def test_different_values_differ(self) -> None:
        assert version_hash("Barolo wine") != version_hash("Barbera wine")
