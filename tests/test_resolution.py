"""Tests for src/resolution.py."""

from src.models import Attack, AttackKind, Claim, Severity
from src.resolution import DEFAULT_RESOLUTION_PATTERNS, ResolutionPattern, resolve_attacks


def _attack(aid: str, src: str, dst: str, description: str, resolved: bool = False) -> Attack:
    return Attack(aid, src, dst, AttackKind.LOGIC, Severity.MAJOR, description, resolved)


def test_pattern_matches_case_insensitively():
    pattern = ResolutionPattern("cost", ("expensive",), ("subsid",))
    assert pattern.matches("Far too EXPENSIVE for towns", "Grants Subsidise the rollout")
    assert not pattern.matches("Far too expensive", "It is popular")


def test_counter_attack_resolves_older_attack():
    old = _attack("a1", "c2", "c1", "Ignores rural users")
    counter = _attack("a2", "c3", "c2", "Rural coverage is already planned")
    result = resolve_attacks((old, counter), new_claims=(), new_attacks=(counter,))
    assert result[0].resolved is True
    assert result[1].resolved is False


def test_keyword_override_resolves_matching_attack():
    old = _attack("a1", "c2", "c1", "Screens pose a health danger to children")
    claim = Claim("c4", "Exposure can be reduced with time limits")
    result = resolve_attacks((old,), new_claims=(claim,), new_attacks=())
    assert result[0].resolved is True


def test_keyword_override_needs_both_sides():
    old = _attack("a1", "c2", "c1", "The schedule is unrealistic")
    claim = Claim("c4", "Exposure can be reduced with time limits")
    result = resolve_attacks((old,), new_claims=(claim,), new_attacks=())
    assert result[0].resolved is False


def test_attacks_from_current_round_are_not_candidates():
    fresh = _attack("a1", "c2", "c1", "Creates a health risk")
    claim = Claim("c3", "Risks are managed by supervision")
    result = resolve_attacks((fresh,), new_claims=(claim,), new_attacks=(fresh,))
    assert result[0].resolved is False


def test_already_resolved_attack_is_unchanged():
    done = _attack("a1", "c2", "c1", "Creates a health risk", resolved=True)
    result = resolve_attacks((done,), new_claims=(), new_attacks=())
    assert result == (done,)


def test_custom_patterns_replace_defaults():
    old = _attack("a1", "c2", "c1", "Noise will bother neighbours")
    claim = Claim("c3", "Sound barriers will be installed")
    patterns = (ResolutionPattern("noise", ("noise",), ("sound barrier",)),)
    assert resolve_attacks((old,), (claim,), (), patterns)[0].resolved is True
    assert resolve_attacks((old,), (claim,), ())[0].resolved is False


def test_resolve_preserves_order_and_input():
    attacks = (
        _attack("a1", "c2", "c1", "Too expensive"),
        _attack("a2", "c3", "c1", "Unclear wording"),
    )
    claim = Claim("c4", "Federal funding covers it")
    result = resolve_attacks(attacks, (claim,), ())
    assert [a.id for a in result] == ["a1", "a2"]
    assert [a.resolved for a in result] == [True, False]
    assert attacks[0].resolved is False


def test_default_patterns_have_both_keyword_sides():
    assert len(DEFAULT_RESOLUTION_PATTERNS) >= 10
    for pattern in DEFAULT_RESOLUTION_PATTERNS:
        assert pattern.attack_keywords and pattern.claim_keywords
