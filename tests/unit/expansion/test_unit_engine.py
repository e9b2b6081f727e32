# tests/unit/expansion/test_unit_engine.py — v1
"""Tests for expansion/engine.py — recursive, immutable expansion."""

from __future__ import annotations

import pytest

from themetree.core.models import CodeSpan, ExpansionDecision
from themetree.core.tree import flatten
from themetree.expansion.engine import ExpansionEngine
from themetree.expansion.partition import PartitionValidationError
from themetree.oracle.errors import OracleConfigurationError
from themetree.oracle.models import DuplicateGroup


def _lines(file: str, start: int, end: int) -> list[CodeSpan]:
    return [CodeSpan(file=file, start_line=start, end_line=end)]


@pytest.fixture
def root(make_theme):
    return make_theme(
        "root",
        "Checkout flow",
        files=["src/cart.py"],
        code_snippets=["+c1\n+c2\n+c3\n+c4"],
    )


class TestExpandNode:
    @pytest.mark.asyncio
    async def test_atomic_node(self, fake_oracle, settings, root):
        engine = ExpansionEngine(fake_oracle, settings)
        result = await engine.expand_node(root)
        assert result.is_atomic is True
        assert result.is_expanded is False
        assert result.child_themes == []
        assert engine.metrics.stop_reasons == {"atomic": 1}

    @pytest.mark.asyncio
    async def test_split_into_children(self, fake_oracle, settings, root, make_split):
        fake_oracle.expansions["root"] = make_split(
            ("Cart totals", _lines("src/cart.py", 1, 2)),
            ("Cart badges", _lines("src/cart.py", 3, 4)),
        )
        engine = ExpansionEngine(fake_oracle, settings)

        result = await engine.expand_node(root)

        assert result.is_expanded is True and result.is_atomic is False
        assert [c.name for c in result.child_themes] == ["Cart totals", "Cart badges"]
        assert all(c.level == 1 and c.parent_id == "root" for c in result.child_themes)
        assert all(c.is_atomic for c in result.child_themes)
        assert engine.metrics.themes_evaluated == 3
        assert engine.metrics.children_created == 2
        # The input node is untouched.
        assert root.child_themes == [] and root.is_expanded is None

    @pytest.mark.asyncio
    async def test_recurses_into_children(self, fake_oracle, settings, root, make_split):
        fake_oracle.expansions["root"] = make_split(
            ("Totals", _lines("src/cart.py", 1, 2)),
            ("Badges", _lines("src/cart.py", 3, 4)),
        )
        fake_oracle.expansions["root_c1"] = make_split(
            ("Subtotal", _lines("src/cart.py", 1, 1)),
            ("Tax", _lines("src/cart.py", 2, 2)),
        )
        engine = ExpansionEngine(fake_oracle, settings)

        result = await engine.expand_node(root)

        grandchildren = result.child_themes[0].child_themes
        assert [g.id for g in grandchildren] == ["root_c1_c1", "root_c1_c2"]
        assert all(g.level == 2 for g in grandchildren)
        assert engine.metrics.max_depth_reached == 2

    @pytest.mark.asyncio
    async def test_failed_decision_is_not_atomic(self, fake_oracle, settings, root):
        fake_oracle.fail("decide_expansion")
        engine = ExpansionEngine(fake_oracle, settings)
        result = await engine.expand_node(root)
        assert result.is_expanded is False
        assert result.is_atomic is False
        assert engine.metrics.stop_reasons == {"error": 1}
        assert fake_oracle.calls["decide_expansion"] == 1

    @pytest.mark.asyncio
    async def test_declined_node_still_expands_existing_children(
        self, fake_oracle, settings, make_theme
    ):
        child = make_theme("k", level=1, parent_id="p")
        parent = make_theme("p", child_themes=[child])
        fake_oracle.expansions["p"] = ExpansionDecision(should_expand=False)
        engine = ExpansionEngine(fake_oracle, settings)

        result = await engine.expand_node(parent)

        assert result.is_atomic is False
        assert result.child_themes[0].is_atomic is True
        assert engine.metrics.stop_reasons == {"oracle-decision": 1, "atomic": 1}

    @pytest.mark.asyncio
    async def test_invalid_partition_raises(self, fake_oracle, settings, root, make_split):
        fake_oracle.expansions["root"] = make_split(
            ("Totals", _lines("src/cart.py", 1, 2)),
            ("Badges", _lines("src/cart.py", 3, 3)),
        )
        with pytest.raises(PartitionValidationError, match="src/cart.py:4"):
            await ExpansionEngine(fake_oracle, settings).expand_node(root)

    @pytest.mark.asyncio
    async def test_depth_cap(self, fake_oracle, make_settings, root, make_split):
        fake_oracle.expansions["root"] = make_split(
            ("Totals", _lines("src/cart.py", 1, 2)),
            ("Badges", _lines("src/cart.py", 3, 4)),
        )
        engine = ExpansionEngine(fake_oracle, make_settings(max_expansion_depth=1))

        result = await engine.expand_node(root)

        assert all(c.is_expanded is False for c in result.child_themes)
        assert engine.metrics.stop_reasons["max-depth"] == 2
        assert fake_oracle.calls["decide_expansion"] == 1

    @pytest.mark.asyncio
    async def test_oversized_code_kept_atomic(self, fake_oracle, make_settings, root, make_split):
        fake_oracle.expansions["root"] = make_split(("All", _lines("src/cart.py", 1, 4)))
        engine = ExpansionEngine(fake_oracle, make_settings(max_expansion_code_lines=3))

        result = await engine.expand_node(root)

        assert result.is_atomic is True and result.is_expanded is False
        assert result.child_themes == []
        assert engine.metrics.stop_reasons == {"code-limit": 1}
        assert fake_oracle.calls["decide_expansion"] == 0

    @pytest.mark.asyncio
    async def test_code_at_limit_still_asks_oracle(self, fake_oracle, make_settings, root):
        engine = ExpansionEngine(fake_oracle, make_settings(max_expansion_code_lines=4))
        await engine.expand_node(root)
        assert fake_oracle.calls["decide_expansion"] == 1


class TestExpandAll:
    @pytest.mark.asyncio
    async def test_partition_failure_keeps_root(
        self, fake_oracle, settings, root, make_theme, make_split
    ):
        other = make_theme("other")
        fake_oracle.expansions["root"] = make_split(("Only", _lines("src/cart.py", 1, 1)))
        engine = ExpansionEngine(fake_oracle, settings)

        result = await engine.expand_all([root, other])

        assert result[0] is root
        assert result[1].is_atomic is True
        assert engine.metrics.failed_expansions == 1
        failure = engine.metrics.failures[0]
        assert failure.theme_id == "root"
        assert failure.error_type == "PartitionValidationError"

    @pytest.mark.asyncio
    async def test_child_failure_contained(self, fake_oracle, settings, root, make_split):
        def explode(node, depth):
            raise RuntimeError("boom")

        fake_oracle.expansions["root"] = make_split(
            ("Totals", _lines("src/cart.py", 1, 2)),
            ("Badges", _lines("src/cart.py", 3, 4)),
        )
        fake_oracle.expansions["root_c1"] = explode
        engine = ExpansionEngine(fake_oracle, settings)

        [result] = await engine.expand_all([root])

        assert result.is_expanded is True
        first, second = result.child_themes
        assert first.is_atomic is None
        assert second.is_atomic is True
        assert engine.metrics.failed_expansions == 1
        assert engine.metrics.expansion_rate == pytest.approx(33.33)

    @pytest.mark.asyncio
    async def test_configuration_error_propagates(self, fake_oracle, settings, root):
        fake_oracle.misconfigured = True
        with pytest.raises(OracleConfigurationError):
            await ExpansionEngine(fake_oracle, settings).expand_all([root])

    @pytest.mark.asyncio
    async def test_duplicate_children_merged_and_reevaluated(
        self, fake_oracle, settings, make_theme, make_split
    ):
        node = make_theme(
            "root", files=["src/a.py"], code_snippets=["+1\n+2\n+3\n+4\n+5"]
        )
        fake_oracle.expansions["root"] = make_split(
            *((f"Part {i}", _lines("src/a.py", i, i)) for i in range(1, 6))
        )
        fake_oracle.duplicates = lambda themes: (
            [DuplicateGroup(indices=[0, 1])] if len(themes) == 4 else []
        )
        engine = ExpansionEngine(fake_oracle, settings)

        [result] = await engine.expand_all([node])

        children = result.child_themes
        assert len(children) == 4
        assert children[0].id.startswith("dedup_")
        assert children[0].source_themes == ["root", "root"]
        assert children[0].is_atomic is True
        # Root, five children, then the merged survivor.
        assert fake_oracle.calls["decide_expansion"] == 7
        assert all(n.is_evaluated for n in flatten([result]))
