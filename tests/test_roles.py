"""
Tests for the role capability table and the claim transition table.
"""

import pytest
from jose import jwt

from app.core.roles import (
    CAPABILITIES, Action, AdminRole, can, can_transition, is_legal_transition
)
from app.core.security import decode_admin_token
from app.core.exceptions import AuthenticationError, PermissionDeniedError
from app.models import ApplicationStatus as S
from app.models.application import FINAL_APPLICATION_STATUSES
from conftest import make_token


class TestAdminRole:
    @pytest.mark.parametrize("raw,expected", [
        ("obc", AdminRole.OBC),
        ("health-centre", AdminRole.HEALTH_CENTRE),
        ("HEALTH_CENTRE", AdminRole.HEALTH_CENTRE),
        ("super-admin", AdminRole.SUPER_ADMIN),
        ("employee", None),
        ("", None),
        (None, None),
    ])
    def test_parse(self, raw, expected):
        assert AdminRole.parse(raw) is expected


class TestCapabilities:
    def test_every_role_has_an_entry(self):
        assert set(CAPABILITIES) == set(AdminRole)

    def test_super_admin_can_do_everything(self):
        assert all(can(AdminRole.SUPER_ADMIN, action) for action in Action)

    @pytest.mark.parametrize("role", [AdminRole.OBC, AdminRole.HEALTH_CENTRE])
    def test_only_super_admin_closes_and_deletes(self, role):
        assert not can(role, Action.CLOSE_QUERY)
        assert not can(role, Action.DELETE_ATTACHMENT)
        assert can(role, Action.RESOLVE_QUERY)
        assert can(role, Action.CREATE_QUERY)

    def test_link_regeneration(self):
        assert can(AdminRole.OBC, Action.REGENERATE_QUERY_LINK)
        assert not can(AdminRole.HEALTH_CENTRE, Action.REGENERATE_QUERY_LINK)

    def test_claim_review_and_delete(self):
        assert all(can(role, Action.REVIEW_CLAIM) for role in AdminRole)
        assert can(AdminRole.OBC, Action.DELETE_CLAIM)
        assert not can(AdminRole.HEALTH_CENTRE, Action.DELETE_CLAIM)


class TestClaimTransitions:
    @pytest.mark.parametrize("role,current,target", [
        (AdminRole.OBC, S.PENDING, S.UNDER_REVIEW),
        (AdminRole.HEALTH_CENTRE, S.UNDER_REVIEW, S.BACK_TO_OBC),
        (AdminRole.OBC, S.BACK_TO_OBC, S.APPROVED),
        (AdminRole.SUPER_ADMIN, S.APPROVED, S.REIMBURSED),
        (AdminRole.SUPER_ADMIN, S.PENDING, S.UNDER_REVIEW),
    ])
    def test_allowed(self, role, current, target):
        assert can_transition(role, current, target)

    @pytest.mark.parametrize("role,current,target", [
        (AdminRole.HEALTH_CENTRE, S.PENDING, S.UNDER_REVIEW),
        (AdminRole.OBC, S.UNDER_REVIEW, S.BACK_TO_OBC),
        (AdminRole.OBC, S.APPROVED, S.REIMBURSED),
        (AdminRole.HEALTH_CENTRE, S.BACK_TO_OBC, S.APPROVED),
    ])
    def test_denied(self, role, current, target):
        assert is_legal_transition(current, target)
        assert not can_transition(role, current, target)

    @pytest.mark.parametrize("current,target", [
        (S.PENDING, S.APPROVED),
        (S.REJECTED, S.PENDING),
        (S.REIMBURSED, S.COMPLETED),
        (S.PENDING, S.PENDING),
    ])
    def test_illegal_for_everyone(self, current, target):
        assert not is_legal_transition(current, target)
        assert not can_transition(AdminRole.SUPER_ADMIN, current, target)

    @pytest.mark.parametrize("current", sorted(FINAL_APPLICATION_STATUSES))
    def test_final_statuses_have_no_exits(self, current):
        assert not any(is_legal_transition(current, target) for target in S)


class TestAdminToken:
    def test_decode(self):
        admin = decode_admin_token(make_token("health-centre", user_id="hc-9", name="Dr. Iyer"))
        assert admin.user_id == "hc-9"
        assert admin.name == "Dr. Iyer"
        assert admin.role is AdminRole.HEALTH_CENTRE

    def test_bad_signature(self):
        token = jwt.encode({"userId": "x", "role": "obc"}, "some-other-secret", algorithm="HS256")
        with pytest.raises(AuthenticationError):
            decode_admin_token(token)

    def test_non_admin_role(self):
        with pytest.raises(PermissionDeniedError):
            decode_admin_token(make_token("employee"))
