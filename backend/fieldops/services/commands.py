from __future__ import annotations
"""Unit-of-work wrapper for ticket mutations.

A command applies its changes to the loaded ticket and commits. If anything
fails the session is rolled back and the ticket reloaded from the database,
so the caller never sees a half-applied in-memory state.
"""
import logging
from typing import Callable, TypeVar
from flask import abort
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from fieldops.models.ticket import Ticket

logger = logging.getLogger(__name__)

R = TypeVar('R')


class TicketCommand:
    def __init__(self, session, ticket: Ticket, action: str):
        self.session = session
        self.ticket = ticket
        self.action = action

    def _restore(self):
        self.session.rollback()
        try:
            self.session.refresh(self.ticket)
        except SQLAlchemyError:
            logger.warning('could not reload ticket %s after failed %s', self.ticket.id, self.action, exc_info=True)

    def run(self, mutate: Callable[[Ticket], R]) -> R:
        try:
            result = mutate(self.ticket)
            self.session.commit()
        except HTTPException:
            self._restore()
            raise
        except SQLAlchemyError:
            logger.exception('%s failed for ticket %s', self.action, self.ticket.id)
            self._restore()
            abort(409, description=f'{self.action} failed')
        return result

__all__ = ['TicketCommand']
