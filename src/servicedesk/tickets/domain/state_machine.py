"""
Ticket State Machine
====================

Legal ticket status transitions, their guards and the side-effects the
caller must apply together with the status write.

The state machine is pure: it authorizes a mutation, it never performs one.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from servicedesk.config import ApprovalStatus, TicketStatus
from servicedesk.core import ConfigurationException


class Guard(str, Enum):
    """Conditions a transition may require."""
    REQUIRES_APPROVAL = "requiresApproval"
    HAS_ASSIGNEE = "hasAssignee"
    IS_APPROVED = "isApproved"
    IS_REJECTED = "isRejected"


class TransitionAction(str, Enum):
    """Side-effects the caller applies atomically with the status change."""
    SET_RESOLVED_AT = "setResolvedAt"
    SET_CLOSED_AT = "setClosedAt"


@dataclass(frozen=True)
class TransitionContext:
    """Facts about the ticket that guards are evaluated against."""
    requires_approval: bool = False
    assignee_id: Optional[str] = None
    approval_status: Optional[ApprovalStatus] = None

    @classmethod
    def from_ticket(cls, ticket) -> "TransitionContext":
        return cls(
            requires_approval=ticket.requires_approval,
            assignee_id=ticket.assignee_id,
            approval_status=ticket.approval_status,
        )


@dataclass(frozen=True)
class Transition:
    from_status: TicketStatus
    to_status: TicketStatus
    guards: Tuple[Guard, ...] = ()
    actions: Tuple[TransitionAction, ...] = ()


@dataclass(frozen=True)
class TransitionResult:
    valid: bool
    error: Optional[str] = None
    valid_transitions: List[TicketStatus] = field(default_factory=list)


S = TicketStatus

TRANSITIONS: Tuple[Transition, ...] = (
    # From NEW
    Transition(S.NEW, S.TRIAGE),
    Transition(S.NEW, S.WAITING_APPROVAL, guards=(Guard.REQUIRES_APPROVAL,)),
    Transition(S.NEW, S.CANCELED),

    # From TRIAGE
    Transition(S.TRIAGE, S.IN_PROGRESS, guards=(Guard.HAS_ASSIGNEE,)),
    Transition(S.TRIAGE, S.WAITING_APPROVAL, guards=(Guard.REQUIRES_APPROVAL,)),
    Transition(S.TRIAGE, S.CANCELED),

    # From IN_PROGRESS
    Transition(S.IN_PROGRESS, S.WAITING_CUSTOMER),
    Transition(S.IN_PROGRESS, S.ON_HOLD),
    Transition(S.IN_PROGRESS, S.RESOLVED, actions=(TransitionAction.SET_RESOLVED_AT,)),
    Transition(S.IN_PROGRESS, S.CANCELED),

    # From WAITING_CUSTOMER
    Transition(S.WAITING_CUSTOMER, S.IN_PROGRESS),
    Transition(S.WAITING_CUSTOMER, S.CLOSED, actions=(TransitionAction.SET_CLOSED_AT,)),

    # From WAITING_APPROVAL
    Transition(S.WAITING_APPROVAL, S.IN_PROGRESS, guards=(Guard.IS_APPROVED,)),
    Transition(S.WAITING_APPROVAL, S.CANCELED, guards=(Guard.IS_REJECTED,)),

    # From ON_HOLD
    Transition(S.ON_HOLD, S.IN_PROGRESS),
    Transition(S.ON_HOLD, S.CANCELED),

    # From RESOLVED
    Transition(S.RESOLVED, S.CLOSED, actions=(TransitionAction.SET_CLOSED_AT,)),
    Transition(S.RESOLVED, S.IN_PROGRESS),  # reopen

    # From CLOSED
    Transition(S.CLOSED, S.IN_PROGRESS),  # reopen
)

GUARD_PREDICATES: Dict[Guard, Callable[[TransitionContext], bool]] = {
    Guard.REQUIRES_APPROVAL: lambda ctx: ctx.requires_approval is True,
    Guard.HAS_ASSIGNEE: lambda ctx: bool(ctx.assignee_id),
    Guard.IS_APPROVED: lambda ctx: ctx.approval_status == ApprovalStatus.APPROVED,
    Guard.IS_REJECTED: lambda ctx: ctx.approval_status == ApprovalStatus.REJECTED,
}


def _check_guard_coverage() -> None:
    missing = [guard.value for guard in Guard if guard not in GUARD_PREDICATES]
    if missing:
        raise ConfigurationException(
            f"Guards without a predicate: {', '.join(missing)}",
            {"missing_guards": missing}
        )


_check_guard_coverage()


class TicketStateMachine:
    """
    Validates ticket status changes against ``TRANSITIONS``.

    Stateless; all methods are static like the SLA calculator.
    """

    @staticmethod
    def find_transition(from_status: TicketStatus, to_status: TicketStatus) -> Optional[Transition]:
        for transition in TRANSITIONS:
            if transition.from_status == from_status and transition.to_status == to_status:
                return transition
        return None

    @staticmethod
    def can_transition(
        from_status: TicketStatus,
        to_status: TicketStatus,
        context: Optional[TransitionContext] = None
    ) -> bool:
        transition = TicketStateMachine.find_transition(from_status, to_status)
        if transition is None:
            return False

        # A missing context is an empty one: guarded transitions fail closed
        context = context or TransitionContext()
        return all(GUARD_PREDICATES[guard](context) for guard in transition.guards)

    @staticmethod
    def get_valid_transitions(from_status: TicketStatus) -> List[TicketStatus]:
        """Every outgoing destination, guards ignored, in table order."""
        return [t.to_status for t in TRANSITIONS if t.from_status == from_status]

    @staticmethod
    def get_transition_actions(
        from_status: TicketStatus,
        to_status: TicketStatus
    ) -> List[TransitionAction]:
        transition = TicketStateMachine.find_transition(from_status, to_status)
        return list(transition.actions) if transition else []

    @staticmethod
    def validate_transition(
        from_status: TicketStatus,
        to_status: TicketStatus,
        context: Optional[TransitionContext] = None
    ) -> TransitionResult:
        """
        Check a proposed status change.

        Returns:
            TransitionResult; when invalid, ``error`` lists the valid
            destinations from ``from_status``.
        """
        valid_transitions = TicketStateMachine.get_valid_transitions(from_status)

        if not TicketStateMachine.can_transition(from_status, to_status, context):
            return TransitionResult(
                valid=False,
                error=(
                    f"Invalid transition from {from_status.value} to {to_status.value}. "
                    f"Valid transitions: {', '.join(s.value for s in valid_transitions)}"
                ),
                valid_transitions=valid_transitions,
            )

        return TransitionResult(valid=True, valid_transitions=valid_transitions)
