from __future__ import annotations
"""Ticket lifecycle: the status graph, its guards and the side effects of a move.

    new -> assigned -> in-progress -> resolved -> closed
              \\-> scheduled -/

Every successful move stamps the matching timestamp, appends exactly one
TicketHistory row and (for assignment / resolution) notifies the party that
cares. Nothing else in the code base writes Ticket.status.
"""
from datetime import datetime
from typing import Optional
from flask import abort
from fieldops.models.base import utcnow
from fieldops.models.ticket import Ticket, TicketHistory
from fieldops.models.user import User
from fieldops.services.notifications import notify_safely
from fieldops.services.policy import assert_can_transition
from fieldops.utils.fsm import TransitionValidator
from fieldops.utils.validation import get_or_404, parse_text

TICKET_FSM = TransitionValidator({
    Ticket.STATUS_NEW: {Ticket.STATUS_ASSIGNED},
    Ticket.STATUS_ASSIGNED: {Ticket.STATUS_IN_PROGRESS, Ticket.STATUS_SCHEDULED},
    Ticket.STATUS_SCHEDULED: {Ticket.STATUS_IN_PROGRESS},
    Ticket.STATUS_IN_PROGRESS: {Ticket.STATUS_RESOLVED},
    Ticket.STATUS_RESOLVED: {Ticket.STATUS_CLOSED},
    Ticket.STATUS_CLOSED: set(),
})

# The single forward step offered by the workflow "advance" action
WORKFLOW_NEXT = {
    Ticket.STATUS_NEW: Ticket.STATUS_ASSIGNED,
    Ticket.STATUS_ASSIGNED: Ticket.STATUS_IN_PROGRESS,
    Ticket.STATUS_SCHEDULED: Ticket.STATUS_IN_PROGRESS,
    Ticket.STATUS_IN_PROGRESS: Ticket.STATUS_RESOLVED,
    Ticket.STATUS_RESOLVED: Ticket.STATUS_CLOSED,
}


def next_status(status: str) -> Optional[str]:
    return WORKFLOW_NEXT.get(status)


def check_transition(actor, ticket: Ticket, target: str, assignee_id: Optional[int] = None, resolution: Optional[str] = None):
    """Abort unless actor may move ticket to target with the given inputs."""
    if target == Ticket.STATUS_IN_PROGRESS and ticket.assignee_id is None:
        abort(400, description='Ticket not assigned')
    TICKET_FSM.assert_can_transition(ticket.status, target)
    assert_can_transition(actor, ticket, target, assignee_id)
    if target == Ticket.STATUS_RESOLVED and not (isinstance(resolution, str) and resolution.strip()):
        abort(400, description='Resolution required')


def apply_transition(session, actor, ticket: Ticket, target: str, notes: Optional[str] = None,
                     assignee_id: Optional[int] = None, resolution: Optional[str] = None,
                     when: Optional[str] = None, now: Optional[datetime] = None) -> TicketHistory:
    """Validate and perform one status move. Caller owns the commit."""
    check_transition(actor, ticket, target, assignee_id=assignee_id, resolution=resolution)
    notes = parse_text(notes, 'notes', required=False)
    when = parse_text(when, 'when', required=False)
    now = now or utcnow()
    if ticket.status == Ticket.STATUS_NEW and ticket.first_response_at is None:
        ticket.first_response_at = now

    if target == Ticket.STATUS_ASSIGNED:
        new_assignee = actor.id if assignee_id is None else assignee_id
        assignee = get_or_404(session, User, new_assignee)
        ticket.assignee_id = assignee.id
        ticket.assigned_at = now
        notes = notes or f'Assigned to {assignee.name}'
    elif target == Ticket.STATUS_SCHEDULED:
        ticket.scheduled_for = when
        notes = notes or (f'Scheduled: {when}' if when else 'Scheduled')
    elif target == Ticket.STATUS_RESOLVED:
        ticket.resolution = resolution.strip()
        ticket.resolved_at = now
    elif target == Ticket.STATUS_CLOSED:
        ticket.closed_at = now

    ticket.status = target
    ticket.updated_at = now
    entry = TicketHistory(ticket_id=ticket.id, status=target, notes=notes, user_id=actor.id, timestamp=now)
    session.add(entry)
    # Primary change first; a failing notification must not take it down
    session.flush()

    if target == Ticket.STATUS_ASSIGNED and ticket.assignee_id != actor.id:
        notify_safely(session, ticket.assignee_id, 'Ticket Assigned',
                      f'You have been assigned to ticket "{ticket.title}"',
                      type='info', related_id=ticket.id, related_type='ticket')
    elif target == Ticket.STATUS_RESOLVED and ticket.created_by != actor.id:
        notify_safely(session, ticket.created_by, 'Ticket Resolved',
                      f'Ticket "{ticket.title}" has been resolved',
                      type='success', related_id=ticket.id, related_type='ticket')
    return entry


# Statuses in which an assigned ticket may change hands without moving
REASSIGNABLE = (Ticket.STATUS_ASSIGNED, Ticket.STATUS_SCHEDULED, Ticket.STATUS_IN_PROGRESS)


def reassign_ticket(session, actor, ticket: Ticket, assignee_id: int, notes: Optional[str] = None,
                    now: Optional[datetime] = None) -> TicketHistory:
    """Hand an assigned ticket to another user (admin only); the status is kept.

    Appends one history row under the current status and notifies the new assignee.
    Caller owns the commit.
    """
    if actor.role != User.ROLE_ADMIN:
        abort(403, description='Permission denied')
    if ticket.status not in REASSIGNABLE:
        abort(400, description=f'Cannot reassign a {ticket.status} ticket')
    assignee = get_or_404(session, User, assignee_id)
    if assignee.id == ticket.assignee_id:
        abort(400, description='Ticket already assigned to this user')
    notes = parse_text(notes, 'notes', required=False)
    now = now or utcnow()
    ticket.assignee_id = assignee.id
    ticket.assigned_at = now
    ticket.updated_at = now
    entry = TicketHistory(ticket_id=ticket.id, status=ticket.status, notes=notes or f'Reassigned to {assignee.name}',
                          user_id=actor.id, timestamp=now)
    session.add(entry)
    session.flush()
    if assignee.id != actor.id:
        notify_safely(session, assignee.id, 'Ticket Assigned',
                      f'You have been assigned to ticket "{ticket.title}"',
                      type='info', related_id=ticket.id, related_type='ticket')
    return entry

__all__ = ['TICKET_FSM', 'WORKFLOW_NEXT', 'REASSIGNABLE', 'next_status', 'check_transition', 'apply_transition', 'reassign_ticket']
