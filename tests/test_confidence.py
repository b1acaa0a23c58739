"""Tests for src/confidence.py."""

import math

import pytest

from src.confidence import confidence_floor, recalc_claim_confidences, recompute_confidence
from src.models import (
    Attack,
    AttackKind,
    Blackboard,
    Claim,
    CrossReference,
    CrossReferenceType,
    Meta,
    Severity,
)


def _attack(severity: Severity, resolved: bool = False, to: str = "c1") -> Attack:
    return Attack("a", "c9", to, AttackKind.LOGIC, severity, "objection", resolved)


def _claim(confidence: float = 0.7, created_at: int = 1) -> Claim:
    return Claim("c1", "claim", confidence=confidence, created_at=created_at)


def test_floor_depends_on_creation_round():
    assert confidence_floor(_claim(created_at=3)) == 0.3
    assert confidence_floor(_claim(created_at=4)) == 0.0


def test_no_attacks_keeps_confidence():
    assert recompute_confidence(_claim(0.7), []) == pytest.approx(0.7)


def test_single_severe_attack_costs_a_tenth():
    assert recompute_confidence(_claim(0.7), [_attack(Severity.MAJOR)]) == pytest.approx(0.6)


def test_additional_severe_attacks_cost_less():
    attacks = [_attack(Severity.CRITICAL), _attack(Severity.MAJOR), _attack(Severity.MAJOR)]
    assert recompute_confidence(_claim(0.9), attacks) == pytest.approx(0.7)


def test_severe_penalty_is_capped():
    attacks = [_attack(Severity.CRITICAL)] * 10
    assert recompute_confidence(_claim(0.9, created_at=5), attacks) == pytest.approx(0.6)


def test_minor_resolved_and_support_adjustments():
    attacks = [_attack(Severity.MINOR), _attack(Severity.MINOR), _attack(Severity.MAJOR, resolved=True)]
    # 0.7 - 0.06 + 0.02 + 0.05
    assert recompute_confidence(_claim(0.7), attacks, support_count=1) == pytest.approx(0.71)


def test_clamped_to_one():
    assert recompute_confidence(_claim(0.99), [], support_count=5) == 1.0


def test_clamped_to_seed_floor():
    attacks = [_attack(Severity.MINOR)] * 20
    assert recompute_confidence(_claim(0.5, created_at=2), attacks) == 0.3
    assert recompute_confidence(_claim(0.5, created_at=9), attacks) == 0.0


def test_non_finite_prior_falls_back_to_default():
    result = recompute_confidence(_claim(math.nan), [_attack(Severity.MAJOR)])
    assert math.isfinite(result)
    assert 0.3 <= result <= 1.0


def test_recalc_claim_confidences_counts_support_references():
    board = Blackboard(
        topic="t",
        claims=(Claim("c1", "one", confidence=0.7, created_at=1), Claim("c2", "two", confidence=0.7, created_at=1)),
        attacks=(_attack(Severity.MAJOR, to="c2"),),
        cross_references=(
            CrossReference("x1", "p1", "p2", CrossReferenceType.SUPPORT, "c1", "agree"),
            CrossReference("x2", "p3", "p2", CrossReferenceType.CHALLENGE, "c1", "disagree"),
        ),
        meta=Meta(step_count=4),
    )
    updated = recalc_claim_confidences(board)
    assert updated.claim("c1").confidence == pytest.approx(0.75)
    assert updated.claim("c2").confidence == pytest.approx(0.6)
    assert all(c.last_updated == 4 for c in updated.claims)
    assert board.claim("c1").confidence == 0.7
