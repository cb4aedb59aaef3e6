import pytest
from flask import abort
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import BadRequest, Conflict
from fieldops import get_db
from fieldops.services.commands import TicketCommand
from seed_helpers import field_setup, create_ticket_via_api, ticket_row


@pytest.fixture()
def ticket(client):
    s = field_setup()
    t = create_ticket_via_api(client, s['tech_headers'], s['restaurant'], s['device'], title='Original title')
    return ticket_row(t['id'])


def test_success_commits(ticket):
    def mutate(t):
        t.title = 'Edited'
        return 'done'

    assert TicketCommand(get_db(), ticket, 'Update ticket').run(mutate) == 'done'
    get_db().expire_all()
    assert ticket_row(ticket.id).title == 'Edited'


def test_database_failure_restores_ticket(ticket):
    def mutate(t):
        t.title = 'Half applied'
        raise SQLAlchemyError('disk full')

    with pytest.raises(Conflict) as exc:
        TicketCommand(get_db(), ticket, 'Update ticket').run(mutate)
    assert exc.value.description == 'Update ticket failed'
    assert ticket.title == 'Original title'


def test_http_error_is_reraised_and_restores(ticket):
    def mutate(t):
        t.title = 'Should not stick'
        abort(400, description='nope')

    with pytest.raises(BadRequest):
        TicketCommand(get_db(), ticket, 'Update ticket').run(mutate)
    assert ticket.title == 'Original title'
    assert ticket_row(ticket.id).title == 'Original title'
