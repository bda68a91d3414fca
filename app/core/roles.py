"""
Admin roles and what each of them may do.

Every permission decision goes through `can()` / `can_transition()`;
endpoints never compare role strings themselves.
"""

import enum
from typing import Optional

from app.models.application import FINAL_APPLICATION_STATUSES, ApplicationStatus


class AdminRole(str, enum.Enum):
    OBC = "obc"                        # OBC/SC/ST Cell: intake and final verification
    HEALTH_CENTRE = "health_centre"    # Medical review
    SUPER_ADMIN = "super_admin"        # Final sanction and overrides

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["AdminRole"]:
        """Accept the spellings issued tokens use ("health-centre", "super-admin")."""
        if not value:
            return None
        try:
            return cls(value.strip().lower().replace("-", "_"))
        except ValueError:
            return None


class Action(str, enum.Enum):
    VIEW_CLAIMS = "view_claims"
    UPDATE_CLAIM_STATUS = "update_claim_status"
    REVIEW_CLAIM = "review_claim"
    DELETE_CLAIM = "delete_claim"
    VIEW_QUERIES = "view_queries"
    CREATE_QUERY = "create_query"
    REPLY_QUERY = "reply_query"
    RESOLVE_QUERY = "resolve_query"
    REOPEN_QUERY = "reopen_query"
    CLOSE_QUERY = "close_query"
    REGENERATE_QUERY_LINK = "regenerate_query_link"
    UPLOAD_ATTACHMENT = "upload_attachment"
    DELETE_ATTACHMENT = "delete_attachment"


_SHARED_ADMIN_ACTIONS = frozenset({
    Action.VIEW_CLAIMS,
    Action.UPDATE_CLAIM_STATUS,
    Action.REVIEW_CLAIM,
    Action.VIEW_QUERIES,
    Action.CREATE_QUERY,
    Action.REPLY_QUERY,
    Action.RESOLVE_QUERY,
    Action.REOPEN_QUERY,
    Action.UPLOAD_ATTACHMENT,
})

CAPABILITIES: dict[AdminRole, frozenset[Action]] = {
    AdminRole.OBC: _SHARED_ADMIN_ACTIONS | {Action.REGENERATE_QUERY_LINK, Action.DELETE_CLAIM},
    AdminRole.HEALTH_CENTRE: _SHARED_ADMIN_ACTIONS,
    AdminRole.SUPER_ADMIN: frozenset(Action),
}

S = ApplicationStatus

# (from, to) -> roles allowed to move a claim along that edge
CLAIM_TRANSITIONS: dict[tuple[ApplicationStatus, ApplicationStatus], frozenset[AdminRole]] = {
    (S.PENDING, S.UNDER_REVIEW): frozenset({AdminRole.OBC}),
    (S.PENDING, S.REJECTED): frozenset({AdminRole.OBC}),
    (S.UNDER_REVIEW, S.BACK_TO_OBC): frozenset({AdminRole.HEALTH_CENTRE}),
    (S.UNDER_REVIEW, S.REJECTED): frozenset({AdminRole.HEALTH_CENTRE}),
    (S.BACK_TO_OBC, S.APPROVED): frozenset({AdminRole.OBC}),
    (S.BACK_TO_OBC, S.UNDER_REVIEW): frozenset({AdminRole.OBC}),
    (S.BACK_TO_OBC, S.REJECTED): frozenset({AdminRole.OBC}),
    (S.APPROVED, S.REIMBURSED): frozenset(),
    (S.APPROVED, S.COMPLETED): frozenset(),
    (S.APPROVED, S.REJECTED): frozenset(),
}

# Dashboard work queue per role
ROLE_QUEUES: dict[AdminRole, tuple[ApplicationStatus, ...]] = {
    AdminRole.OBC: (S.PENDING, S.BACK_TO_OBC),
    AdminRole.HEALTH_CENTRE: (S.UNDER_REVIEW,),
    AdminRole.SUPER_ADMIN: (S.APPROVED,),
}


def can(role: AdminRole, action: Action) -> bool:
    return action in CAPABILITIES.get(role, frozenset())


def is_legal_transition(current: ApplicationStatus, target: ApplicationStatus) -> bool:
    if current in FINAL_APPLICATION_STATUSES:
        return False
    return (current, target) in CLAIM_TRANSITIONS


def can_transition(role: AdminRole, current: ApplicationStatus, target: ApplicationStatus) -> bool:
    """Super Admin may take any legal edge; other roles only the edges listed for them."""
    if not is_legal_transition(current, target):
        return False
    if role == AdminRole.SUPER_ADMIN:
        return True
    return role in CLAIM_TRANSITIONS[(current, target)]
