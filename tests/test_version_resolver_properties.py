"""
Property-based tests for the Runtime Version Resolver.

Covers caret, at-least and exact constraints, default suppression, and the
resolver's determinism over arbitrary inputs.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from sld_core.enums import ConstraintOperator
from sld_core.version_resolver import (
    VersionResolver,
    constraint_operator,
    parse_version,
    sort_versions_descending,
    version_at_least,
)


# Strategies for generating valid test data

@st.composite
def version_strategy(draw) -> str:
    """Generate ``major.minor`` versions."""
    major = draw(st.integers(min_value=5, max_value=9))
    minor = draw(st.integers(min_value=0, max_value=12))
    return f"{major}.{minor}"


@st.composite
def installed_strategy(draw) -> list[str]:
    """Generate installed version lists sorted newest first."""
    versions = draw(st.lists(version_strategy(), max_size=6, unique=True))
    return sort_versions_descending(versions)


@st.composite
def constraint_strategy(draw) -> str:
    """Generate constraints in the forms projects declare."""
    prefix = draw(st.sampled_from(["", "^", ">=", "~", ">= ", "^"]))
    suffix = draw(st.sampled_from(["", ".0", " || ^9.0"]))
    return f"{prefix}{draw(version_strategy())}{suffix}"


resolver = VersionResolver()


class TestCaretSemantics:
    """Caret constraints stay within the base major version."""

    def test_caret_picks_newest_same_major(self) -> None:
        assert resolver.resolve("^8.1", ["8.3", "8.1", "7.4"], "") == "8.3"

    def test_caret_without_compatible_major_is_empty(self) -> None:
        assert resolver.resolve("^7.2", ["8.3", "8.1"], "") == ""

    def test_caret_rejects_older_minor(self) -> None:
        assert resolver.resolve("^8.2", ["8.1", "8.0"], "") == ""

    def test_tilde_requires_exact_match(self) -> None:
        assert resolver.resolve("~8.1", ["8.3", "8.1"], "") == "8.1"
        assert resolver.resolve("~8.1", ["9.0", "8.2"], "") == ""
        assert constraint_operator("~8.1") == ConstraintOperator.EXACT

    @given(constraint=constraint_strategy(), installed=installed_strategy())
    @settings(max_examples=200)
    def test_caret_result_shares_major(self, constraint: str, installed: list[str]) -> None:
        """
        *For any* caret constraint, a non-empty result SHALL have the same
        major version as the constraint's base and be at least the base.
        """
        if constraint_operator(constraint) != ConstraintOperator.CARET:
            return
        result = resolver.resolve(constraint, installed, "")
        if result:
            base = resolver.base_version(constraint)
            assert parse_version(result)[0] == parse_version(base)[0]
            assert parse_version(result) >= parse_version(base)


class TestAtLeastSemantics:
    """``>=`` constraints accept any newer version."""

    def test_at_least_crosses_majors(self) -> None:
        assert resolver.resolve(">=8.0", ["8.3", "7.4"], "") == "8.3"

    def test_at_least_picks_first_in_descending_order(self) -> None:
        assert resolver.resolve(">=7.4", ["8.3", "8.2", "7.4"], "") == "8.3"

    def test_at_least_with_nothing_new_enough(self) -> None:
        assert resolver.resolve(">=8.4", ["8.3", "7.4"], "") == ""

    def test_numeric_comparison_of_minor(self) -> None:
        assert resolver.resolve(">=8.9", ["8.10"], "") == "8.10"


class TestExactSemantics:
    def test_exact_match(self) -> None:
        assert resolver.resolve("8.1", ["8.3", "8.1"], "") == "8.1"

    def test_exact_miss(self) -> None:
        assert resolver.resolve("8.2", ["8.3", "8.1"], "") == ""

    def test_patch_level_is_ignored(self) -> None:
        assert resolver.resolve("8.1.12", ["8.1"], "") == "8.1"


class TestDefaultSuppression:
    """A winner equal to the current default produces no override."""

    def test_winner_equal_to_default_is_empty(self) -> None:
        assert resolver.resolve("^8.1", ["8.3", "8.1"], "8.3") == ""

    @given(constraint=constraint_strategy(), installed=installed_strategy())
    @settings(max_examples=200)
    def test_default_never_returned(self, constraint: str, installed: list[str]) -> None:
        """
        *For any* inputs, the result SHALL never equal the current default
        unless both are empty.
        """
        winner = resolver.resolve(constraint, installed, "")
        if winner:
            assert resolver.resolve(constraint, installed, winner) == ""


class TestTotality:
    """The resolver never raises and is deterministic."""

    def test_empty_constraint(self) -> None:
        assert resolver.resolve("", ["8.3"], "") == ""

    def test_unparseable_constraint(self) -> None:
        assert resolver.resolve("*", ["8.3"], "") == ""
        assert resolver.resolve("dev-main", ["8.3"], "") == ""

    def test_no_installed_versions(self) -> None:
        assert resolver.resolve("^8.1", [], "") == ""

    @given(
        constraint=st.text(max_size=20),
        installed=st.lists(st.text(max_size=6), max_size=5),
        default=st.text(max_size=6),
    )
    @settings(max_examples=200)
    def test_resolver_is_total(self, constraint: str, installed: list[str], default: str) -> None:
        """
        *For any* strings, resolve SHALL return a string without raising.
        """
        result = resolver.resolve(constraint, installed, default)
        assert isinstance(result, str)
        assert result == "" or result in installed

    @given(constraint=constraint_strategy(), installed=installed_strategy(), default=version_strategy())
    @settings(max_examples=200)
    def test_resolver_is_deterministic(self, constraint: str, installed: list[str], default: str) -> None:
        """
        *For any* constraint and installed list, repeated calls SHALL return
        identical results.
        """
        first = resolver.resolve(constraint, installed, default)
        second = resolver.resolve(constraint, list(installed), default)
        assert first == second


class TestVersionHelpers:
    def test_parse_version(self) -> None:
        assert parse_version("8.1") == (8, 1)
        assert parse_version("8.1.3") == (8, 1, 3)
        assert parse_version("8.x") is None
        assert parse_version("") is None

    def test_sort_descending_numeric(self) -> None:
        assert sort_versions_descending(["7.4", "8.10", "8.9"]) == ["8.10", "8.9", "7.4"]

    def test_sort_keeps_unparseable_last(self) -> None:
        assert sort_versions_descending(["weird", "8.1"]) == ["8.1", "weird"]

    def test_version_at_least(self) -> None:
        assert version_at_least("7.4", "7.4")
        assert version_at_least("8.0", "7.4")
        assert not version_at_least("7.3", "7.4")
        assert not version_at_least("5.6", "7.4")
        assert version_at_least("unknown", "7.4")
