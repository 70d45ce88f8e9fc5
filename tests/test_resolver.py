"""Tests for effective permission resolution and the guard predicates."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from app.features.permissions.enums import Permission, Position
from app.features.permissions.guard import has_all, has_any, has_permission
from app.features.permissions.resolver import active_grants, applicable_grants


NOW = datetime(2026, 3, 2, 9, 30)


@dataclass
class Grant:
    permission: Permission
    granted: bool
    granted_at: datetime = NOW - timedelta(days=1)
    expires_at: Optional[datetime] = None


class TestResolve:

    @pytest.mark.parametrize("position", list(Position))
    def test_no_grants_gives_defaults(self, resolver, policy, position):
        assert resolver.resolve(position, [], NOW) == policy.defaults_for(position)

    def test_grant_beyond_defaults(self, resolver):
        grants = [Grant(Permission.INVENTORY_MANAGE, True)]
        assert Permission.INVENTORY_MANAGE in resolver.resolve(Position.RECEPTIONIST, grants, NOW)

    def test_revocation_beats_default(self, resolver):
        grants = [Grant(Permission.USERS_MANAGE, False)]
        effective = resolver.resolve(Position.ADMIN, grants, NOW)
        assert Permission.USERS_MANAGE not in effective
        assert effective == frozenset(Permission) - {Permission.USERS_MANAGE}

    @pytest.mark.parametrize("granted", [True, False])
    def test_expired_grant_has_no_effect(self, resolver, policy, granted):
        yesterday = NOW - timedelta(days=1)
        grants = [
            Grant(Permission.HR_VIEW, granted, granted_at=NOW - timedelta(days=10), expires_at=yesterday),
            Grant(Permission.HANDOVER_VIEW, granted, granted_at=NOW - timedelta(days=10), expires_at=yesterday),
        ]
        assert resolver.resolve(Position.NURSE, grants, NOW) == policy.defaults_for(Position.NURSE)

    def test_grant_expiring_exactly_now_is_inactive(self, resolver):
        grants = [Grant(Permission.HR_VIEW, True, expires_at=NOW)]
        assert Permission.HR_VIEW not in resolver.resolve(Position.NURSE, grants, NOW)

    def test_latest_grant_wins_regardless_of_order(self, resolver):
        older = Grant(Permission.FINANCE_VIEW, True, granted_at=NOW - timedelta(hours=5))
        newer = Grant(Permission.FINANCE_VIEW, False, granted_at=NOW - timedelta(hours=1))
        assert Permission.FINANCE_VIEW not in resolver.resolve(Position.NURSE, [older, newer], NOW)
        assert Permission.FINANCE_VIEW not in resolver.resolve(Position.NURSE, [newer, older], NOW)

    def test_expired_newer_grant_falls_back_to_older_active_one(self, resolver):
        older = Grant(Permission.FINANCE_VIEW, True, granted_at=NOW - timedelta(days=3))
        newer = Grant(
            Permission.FINANCE_VIEW, False,
            granted_at=NOW - timedelta(days=2),
            expires_at=NOW - timedelta(days=1),
        )
        assert Permission.FINANCE_VIEW in resolver.resolve(Position.NURSE, [older, newer], NOW)

    def test_equal_timestamps_later_in_sequence_wins(self, resolver):
        at = NOW - timedelta(minutes=1)
        grant = Grant(Permission.AUDIT_VIEW, True, granted_at=at)
        revoke = Grant(Permission.AUDIT_VIEW, False, granted_at=at)
        assert Permission.AUDIT_VIEW not in resolver.resolve(Position.NURSE, [grant, revoke], NOW)
        assert Permission.AUDIT_VIEW in resolver.resolve(Position.NURSE, [revoke, grant], NOW)

    def test_aware_and_naive_timestamps_compare(self, resolver):
        grants = [Grant(
            Permission.HR_VIEW, True,
            granted_at=(NOW - timedelta(hours=1)).replace(tzinfo=timezone.utc),
            expires_at=(NOW + timedelta(hours=1)).replace(tzinfo=timezone.utc),
        )]
        assert Permission.HR_VIEW in resolver.resolve(Position.NURSE, grants, NOW)

    def test_resolve_is_repeatable(self, resolver):
        grants = [Grant(Permission.HR_VIEW, True), Grant(Permission.HANDOVER_VIEW, False)]
        first = resolver.resolve(Position.NURSE, grants, NOW)
        assert resolver.resolve(Position.NURSE, grants, NOW) == first


class TestGrantHelpers:

    def test_active_grants_keeps_order(self):
        a = Grant(Permission.HR_VIEW, True)
        b = Grant(Permission.HR_VIEW, False, expires_at=NOW - timedelta(seconds=1))
        c = Grant(Permission.HR_MANAGE, True, expires_at=NOW + timedelta(days=1))
        assert active_grants([a, b, c], NOW) == [a, c]

    def test_applicable_grants_one_per_permission(self):
        a = Grant(Permission.HR_VIEW, True, granted_at=NOW - timedelta(hours=2))
        b = Grant(Permission.HR_VIEW, False, granted_at=NOW - timedelta(hours=1))
        c = Grant(Permission.HR_MANAGE, True)
        assert applicable_grants([a, b, c], NOW) == {Permission.HR_VIEW: b, Permission.HR_MANAGE: c}


class TestGuard:
    held = frozenset({Permission.HANDOVER_VIEW, Permission.HR_VIEW})

    def test_has_permission(self):
        assert has_permission(self.held, Permission.HR_VIEW)
        assert not has_permission(self.held, Permission.HR_MANAGE)

    def test_has_any(self):
        assert has_any(self.held, Permission.HR_MANAGE, Permission.HR_VIEW)
        assert not has_any(self.held, Permission.HR_MANAGE, Permission.FINANCE_VIEW)
        assert not has_any(self.held)

    def test_has_all(self):
        assert has_all(self.held, Permission.HANDOVER_VIEW, Permission.HR_VIEW)
        assert not has_all(self.held, Permission.HANDOVER_VIEW, Permission.HR_MANAGE)
        assert has_all(self.held)
        assert has_all(frozenset())
