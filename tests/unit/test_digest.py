"""
Unit tests for the digest compiler.
"""

import pytest

from threadmem.services.summary_memory.data_models import (
    Candidate,
    DecisionEntry,
    FactEntry,
    FactValue,
    Summary,
    TodoEntry,
    TodoStatus,
)
from threadmem.services.summary_memory.digest import compile_digest, truncate
from threadmem.services.summary_memory.merger import merge


def _fact(value):
    return FactEntry(FactValue.from_raw(value), ["m1"])


class TestCompileDigest:
    """Test section layout and limits."""

    @pytest.mark.unit
    def test_empty_summary(self):
        assert compile_digest(Summary(thread_id="t1")) == ""

    @pytest.mark.unit
    def test_sections_joined(self):
        summary = Summary(
            thread_id="t1",
            goals=["Plan trip"],
            facts={"city": _fact("Lisbon"), "budget": _fact(1500), "flexible": _fact(True)},
            decisions=[DecisionEntry("Fly Friday", "m1", "now")],
            todos=[TodoEntry("Book hotel", "m1")],
            constraints=["No red-eye"],
        )
        assert compile_digest(summary) == (
            "Goals: Plan trip | Facts: city: Lisbon; budget: 1500; flexible: yes | "
            "Decisions: Fly Friday | TODOs: 1 items | Constraints: No red-eye"
        )

    @pytest.mark.unit
    def test_section_limits(self):
        summary = Summary(
            thread_id="t1",
            goals=["g1", "g2", "g3", "g4"],
            facts={f"f{i}": _fact(i) for i in range(7)},
            decisions=[DecisionEntry(f"d{i}", "m", "now") for i in range(5)],
            constraints=["c1", "c2", "c3"],
        )
        digest = compile_digest(summary)
        assert "Goals: g1, g2, g3 |" in digest
        assert "f4: 4" in digest and "f5" not in digest
        assert "Decisions: d2; d3; d4" in digest
        assert digest.endswith("Constraints: c1, c2")

    @pytest.mark.unit
    def test_only_open_todos_counted(self):
        summary = Summary(thread_id="t1", todos=[
            TodoEntry("a", "m"), TodoEntry("b", "m", TodoStatus.DONE),
        ])
        assert compile_digest(summary) == "TODOs: 1 items"

    @pytest.mark.unit
    def test_record_fact_rendering(self):
        summary = Summary(thread_id="t1", facts={"flight": _fact({"day": "Fri", "direct": True})})
        assert compile_digest(summary) == "Facts: flight: day=Fri, direct=yes"

    @pytest.mark.unit
    def test_truncated_to_limit(self):
        summary = Summary(thread_id="t1", goals=["x" * 2000])
        digest = compile_digest(summary)
        assert len(digest) == 1500
        assert digest.endswith("...")

    @pytest.mark.unit
    def test_custom_limit(self):
        summary = Summary(thread_id="t1", goals=["abcdefghij"])
        assert compile_digest(summary, max_chars=10) == "Goals: ..."

    @pytest.mark.unit
    def test_bound_holds_for_large_merged_state(self):
        summary = Summary(thread_id="t1")
        for i in range(60):
            summary = merge(summary, Candidate(
                facts={f"subject {i}": "v" * 200},
                decisions=[f"decision {i} " + "d" * 300],
                goals=["g" * 400 + str(i)],
            ), f"a{i}")
        assert len(compile_digest(summary)) <= 1500

    @pytest.mark.unit
    def test_pure(self):
        summary = Summary(thread_id="t1", goals=["g"])
        assert compile_digest(summary) == compile_digest(summary.clone())


class TestTruncate:

    @pytest.mark.unit
    def test_short_text_untouched(self):
        assert truncate("abc", 3) == "abc"

    @pytest.mark.unit
    def test_tiny_limit(self):
        assert truncate("abcdef", 2) == "ab"
