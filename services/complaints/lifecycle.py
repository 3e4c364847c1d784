"""
Complaint lifecycle rules.

Each operation declares the roles allowed to invoke it and the statuses it
may start from. ``authorize`` and ``ensure_transition_allowed`` are the only
places these rules are checked.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional

from common.complaint_types import ComplaintStatus, Role
from common.errors import AuthorizationError, InvalidStateError
from libs.auth.jwt_verify import Actor, ensure_role


class Operation(str, Enum):
    CREATE = "create"
    VIEW = "view"
    LIST_ALL = "list_all"
    LIST_MINE = "list_mine"
    HISTORY = "history"
    STATS = "stats"
    SET_STATUS = "set_status"
    SET_PRIORITY = "set_priority"
    SEND_PROOF = "send_proof"
    SUBMIT_FEEDBACK = "submit_feedback"
    FORWARD = "forward"
    REJECT = "reject"
    CLOSE = "close"


STAFF = frozenset({Role.ADMIN, Role.SUPERADMIN})
ANY_ROLE = frozenset(Role)

PERMISSIONS: Dict[Operation, FrozenSet[Role]] = {
    Operation.CREATE: frozenset({Role.CITIZEN}),
    Operation.VIEW: ANY_ROLE,
    Operation.LIST_ALL: STAFF,
    Operation.LIST_MINE: frozenset({Role.CITIZEN}),
    Operation.HISTORY: STAFF,
    Operation.STATS: frozenset({Role.SUPERADMIN}),
    Operation.SET_STATUS: STAFF,
    Operation.SET_PRIORITY: STAFF,
    Operation.SEND_PROOF: STAFF,
    Operation.SUBMIT_FEEDBACK: frozenset({Role.CITIZEN}),
    Operation.FORWARD: frozenset({Role.SUPERADMIN}),
    Operation.REJECT: frozenset({Role.SUPERADMIN}),
    Operation.CLOSE: frozenset({Role.CITIZEN}),
}

# Operations only the complaint's reporter may invoke
REPORTER_ONLY = frozenset({Operation.SUBMIT_FEEDBACK, Operation.CLOSE})

# Operations an admin may only invoke on complaints routed to their department
DEPARTMENT_SCOPED = frozenset(
    {
        Operation.VIEW,
        Operation.HISTORY,
        Operation.SET_STATUS,
        Operation.SET_PRIORITY,
        Operation.SEND_PROOF,
    }
)

# Statuses a department works on; a reopened complaint waits for a superadmin
WORKING_STATUSES = frozenset(
    {
        ComplaintStatus.PENDING,
        ComplaintStatus.UNDER_CONSIDERATION,
        ComplaintStatus.REASSIGNED,
        ComplaintStatus.RESOLVED,
    }
)

# None means "any non-terminal status"
ALLOWED_FROM: Dict[Operation, Optional[FrozenSet[ComplaintStatus]]] = {
    Operation.SET_STATUS: WORKING_STATUSES,
    Operation.SET_PRIORITY: None,
    Operation.SEND_PROOF: WORKING_STATUSES,
    Operation.SUBMIT_FEEDBACK: frozenset({ComplaintStatus.RESOLVED}),
    Operation.FORWARD: frozenset({ComplaintStatus.REOPENED}),
    Operation.REJECT: frozenset({ComplaintStatus.REOPENED}),
    Operation.CLOSE: frozenset({ComplaintStatus.RESOLVED}),
}

# Targets an admin may set directly; resolved requires a proof upload
SETTABLE_STATUSES = frozenset({ComplaintStatus.PENDING, ComplaintStatus.UNDER_CONSIDERATION})

# Where Forward sends a reopened complaint
FORWARD_TARGET = ComplaintStatus.UNDER_CONSIDERATION


def is_terminal(status: ComplaintStatus, is_final: bool) -> bool:
    if status == ComplaintStatus.CLOSED:
        return True
    return status == ComplaintStatus.RESOLVED and is_final


def authorize(operation: Operation, actor: Actor) -> None:
    ensure_role(actor, PERMISSIONS[operation])


def ensure_can_access(operation: Operation, actor: Actor, complaint) -> None:
    """Ownership and department checks for an already loaded complaint."""
    if operation in REPORTER_ONLY and complaint.reporter_id != actor.user_id:
        raise AuthorizationError("Only the reporter of this complaint can do this")

    if operation == Operation.VIEW and actor.role == Role.CITIZEN:
        if complaint.reporter_id != actor.user_id:
            raise AuthorizationError("Not authorized to view this complaint")
        return

    if operation in DEPARTMENT_SCOPED and actor.role == Role.ADMIN:
        department = actor.department.value if actor.department else None
        if department is None or complaint.routing_department != department:
            raise AuthorizationError("Complaint is not assigned to your department")


def ensure_transition_allowed(operation: Operation, complaint) -> None:
    """
    Raise InvalidStateError unless the complaint's current state permits the
    operation. Terminal complaints never permit any operation.
    """
    status = ComplaintStatus(complaint.status)
    if is_terminal(status, complaint.is_final):
        raise InvalidStateError(f"Complaint is final ({status.value}); no further changes allowed")

    allowed = ALLOWED_FROM[operation]
    if allowed is not None and status not in allowed:
        expected = ", ".join(sorted(s.value for s in allowed))
        raise InvalidStateError(
            f"Cannot {operation.value.replace('_', ' ')} a complaint in status "
            f"'{status.value}' (expected: {expected})"
        )


def validate_target_status(status: ComplaintStatus) -> None:
    if status == ComplaintStatus.RESOLVED:
        raise InvalidStateError("Use sendProof to resolve a complaint with proof")
    if status not in SETTABLE_STATUSES:
        raise InvalidStateError(f"Status '{status.value}' cannot be set directly")
