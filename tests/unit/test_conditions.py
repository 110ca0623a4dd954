"""
test_conditions.py - Unit tests for ConditionRegistry

Tests:
- Registration, ids and duplicate detection
- Resolution state machine
- Expiry rule (expiry <= now)
- Listener notification
"""

import pytest
from datetime import datetime, timedelta

from predmarket import (
    ConditionRegistry, ConditionState,
    UnknownCondition, DuplicateCondition, AlreadyResolved,
)

T0 = datetime(2026, 3, 1, 9, 0, 0)


class TestRegistration:

    def test_register_assigns_sequential_ids(self, registry):
        assert registry.register("A") == "cond_000001"
        assert registry.register("B") == "cond_000002"

    def test_new_condition_is_pending(self, registry):
        cid = registry.register("A")
        assert registry.state(cid) is ConditionState.PENDING
        assert cid in registry

    def test_description_is_stripped(self, registry):
        cid = registry.register("  Rain tomorrow  ")
        assert registry.get(cid).description == "Rain tomorrow"

    def test_duplicate_open_description_rejected(self, registry):
        registry.register("Rain tomorrow")
        with pytest.raises(DuplicateCondition):
            registry.register(" Rain tomorrow ")

    def test_resolved_description_may_be_reused(self, registry):
        cid = registry.register("Rain tomorrow")
        registry.resolve(cid, False)
        again = registry.register("Rain tomorrow")
        assert again != cid

    def test_empty_description_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.register("   ")

    def test_unknown_condition(self, registry):
        with pytest.raises(UnknownCondition):
            registry.get("cond_999999")


class TestResolution:

    @pytest.mark.parametrize("outcome,state", [
        (True, ConditionState.TRUE),
        (False, ConditionState.FALSE),
    ])
    def test_resolve(self, registry, outcome, state):
        cid = registry.register("A")
        resolved = registry.resolve(cid, outcome, at=T0)
        assert resolved.state is state
        assert resolved.resolved_at == T0
        assert registry.state(cid) is state

    def test_resolve_twice_fails(self, registry):
        cid = registry.register("A")
        registry.resolve(cid, True)
        with pytest.raises(AlreadyResolved):
            registry.resolve(cid, False)
        assert registry.state(cid) is ConditionState.TRUE

    def test_resolve_unknown(self, registry):
        with pytest.raises(UnknownCondition):
            registry.resolve("cond_000042", True)

    def test_outcome_must_be_bool(self, registry):
        cid = registry.register("A")
        with pytest.raises(TypeError):
            registry.resolve(cid, 1)
        assert registry.state(cid) is ConditionState.PENDING

    def test_require_pending(self, registry):
        cid = registry.register("A")
        assert registry.require_pending(cid).condition_id == cid
        registry.resolve(cid, True)
        with pytest.raises(AlreadyResolved):
            registry.require_pending(cid)

    def test_list_conditions_by_state(self, registry):
        a = registry.register("A")
        b = registry.register("B")
        registry.resolve(a, True)
        assert [c.condition_id for c in registry.list_conditions()] == [a, b]
        assert [c.condition_id for c in registry.list_conditions(ConditionState.PENDING)] == [b]


class TestExpiry:

    def test_expires_at_exact_time(self, registry):
        cid = registry.register("A", expiry=T0)
        assert registry.check_expiry(T0) == [cid]
        assert registry.state(cid) is ConditionState.EXPIRED

    def test_not_expired_before_time(self, registry):
        cid = registry.register("A", expiry=T0)
        assert registry.check_expiry(T0 - timedelta(seconds=1)) == []
        assert registry.state(cid) is ConditionState.PENDING

    def test_no_expiry_never_expires(self, registry):
        cid = registry.register("A")
        assert registry.check_expiry(T0 + timedelta(days=10000)) == []
        assert registry.state(cid) is ConditionState.PENDING

    def test_resolved_condition_does_not_expire(self, registry):
        cid = registry.register("A", expiry=T0)
        registry.resolve(cid, True)
        assert registry.check_expiry(T0) == []
        assert registry.state(cid) is ConditionState.TRUE

    def test_check_expiry_returns_only_newly_expired(self, registry):
        a = registry.register("A", expiry=T0)
        b = registry.register("B", expiry=T0 + timedelta(hours=1))
        assert registry.check_expiry(T0) == [a]
        assert registry.check_expiry(T0 + timedelta(hours=2)) == [b]
        assert registry.check_expiry(T0 + timedelta(hours=3)) == []

    def test_expire_single(self, registry):
        cid = registry.register("A", expiry=T0)
        assert registry.expire(cid, T0 - timedelta(minutes=1)) is False
        assert registry.expire(cid, T0) is True
        assert registry.expire(cid, T0) is False


class TestListeners:

    def test_listener_sees_terminal_state(self, registry):
        seen = []
        registry.subscribe(lambda c: seen.append((c.condition_id, c.state)))
        a = registry.register("A")
        b = registry.register("B", expiry=T0)
        registry.resolve(a, True)
        registry.check_expiry(T0)
        assert seen == [(a, ConditionState.TRUE), (b, ConditionState.EXPIRED)]

    def test_listener_not_called_on_failure(self, registry):
        seen = []
        registry.subscribe(seen.append)
        cid = registry.register("A")
        registry.resolve(cid, True)
        with pytest.raises(AlreadyResolved):
            registry.resolve(cid, True)
        assert len(seen) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
