import pytest

from learner_dedupe.models import ManualOverride, MatchCandidate
from learner_dedupe.schema import CodeFormat
from learner_dedupe.steps import MergePlanner, resolve_overrides

from conftest import make_learner


def test_plan_keeps_the_authoritative_side() -> None:
    candidate = MatchCandidate(
        source_id="L1",
        target_id="A1",
        score=0.9,
        metadata={"rule": "edit_distance", "cohort_key": "G1"},
    )

    plan = MergePlanner().plan(candidate, ["results", "attendance", "results"])

    assert plan.canonical_id == "A1"
    assert plan.retired_id == "L1"
    assert plan.dependent_collections == ("results", "attendance")
    assert plan.cohort_key == "G1"
    assert plan.rule == "edit_distance"


def test_plan_refuses_self_merge() -> None:
    with pytest.raises(ValueError):
        MergePlanner().plan(MatchCandidate(source_id="A1", target_id="A1", score=1.0), ["results"])


def test_overrides_are_validated_against_the_cohort() -> None:
    records = [
        make_learner("A7", "ADM-PP2-007", "Mariam Sidi", cohort="PP2"),
        make_learner("A8", "ADM-PP2-008", "Umayma Noor", cohort="PP2"),
        make_learner("L1", "1272", "Maryam Abdalla", cohort="PP2"),
        make_learner("L2", "1327", "Mawadha Ali", cohort="PP2"),
        make_learner("L3", "1400", "Hafidh Omar", cohort="PP2"),
    ]
    overrides = [
        ManualOverride("PP2", "1272", "ADM-PP2-007", "confirmed by class teacher"),
        ManualOverride("PP2", "1327", "ADM-PP2-999"),
        ManualOverride("PP2", "1400", "1327"),
        ManualOverride("PP2", "ADM-PP2-008", "ADM-PP2-008"),
    ]

    accepted, rejected = resolve_overrides(records, overrides, CodeFormat().predicate("PP2"))

    assert [(c.source_id, c.target_id) for c in accepted] == [("L1", "A7")]
    assert accepted[0].metadata["rule"] == "manual_override"
    assert accepted[0].metadata["reason"] == "confirmed by class teacher"
    assert {(r.source_code, r.reason) for r in rejected} == {
        ("1327", "target not found in cohort"),
        ("1400", "target is itself retired"),
        ("ADM-PP2-008", "source equals target"),
    }


def test_override_target_must_follow_the_code_scheme() -> None:
    records = [
        make_learner("L1", "1272", "Mariam Sidi", cohort="PP2"),
        make_learner("L2", "1273", "Mariam Sidi", cohort="PP2"),
    ]

    accepted, rejected = resolve_overrides(
        records,
        [ManualOverride("PP2", "1272", "1273")],
        CodeFormat().predicate("PP2"),
    )

    assert accepted == []
    assert rejected[0].reason == "target is not authoritative"


def test_source_listed_twice_is_rejected() -> None:
    records = [
        make_learner("A1", "ADM-PP2-001", "Mariam Sidi", cohort="PP2"),
        make_learner("A2", "ADM-PP2-002", "Mariam Ali", cohort="PP2"),
        make_learner("L1", "1272", "Mariam", cohort="PP2"),
    ]

    accepted, rejected = resolve_overrides(
        records,
        [ManualOverride("PP2", "1272", "ADM-PP2-001"), ManualOverride("PP2", "1272", "ADM-PP2-002")],
        CodeFormat().predicate("PP2"),
    )

    assert accepted == []
    assert [r.reason for r in rejected] == ["source listed more than once"] * 2
