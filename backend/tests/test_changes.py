import pytest
from fieldops import get_db, get_context
from fieldops.models.restaurant import Restaurant
from fieldops.services.events import ChangeFeed, ChangeOp
from seed_helpers import field_setup, ensure_equipment, create_ticket_via_api, unique
from lifecycle_helpers import drive_to


def test_feed_publish_and_since():
    feed = ChangeFeed(maxlen=3)
    for i in range(1, 5):
        feed.publish('tickets', ChangeOp.UPDATE, i)
    feed.publish('devices', 'INSERT', 9)
    assert feed.last_seq == 5
    # bounded log keeps only the newest events
    assert [e.seq for e in feed.since(0)] == [3, 4, 5]
    assert [e.row_id for e in feed.since(3, 'tickets')] == [4]
    evt = feed.since(4)[0]
    assert evt.op is ChangeOp.INSERT
    assert evt.to_dict()['op'] == 'INSERT'
    assert evt.to_dict()['table'] == 'devices'


def test_feed_subscribers():
    feed = ChangeFeed()
    seen, everything = [], []
    unsubscribe = feed.subscribe('tickets', seen.append)
    feed.subscribe(None, everything.append)

    def boom(evt):
        raise RuntimeError('subscriber bug')

    feed.subscribe('tickets', boom)
    feed.publish('tickets', ChangeOp.UPDATE, 1)
    feed.publish('devices', ChangeOp.UPDATE, 2)
    assert [e.row_id for e in seen] == [1]
    assert [e.row_id for e in everything] == [1, 2]
    unsubscribe()
    feed.publish('tickets', ChangeOp.DELETE, 1)
    assert len(seen) == 1
    assert len(everything) == 3


def test_feed_rejects_unknown_op():
    with pytest.raises(ValueError):
        ChangeFeed().publish('tickets', 'MERGE', 1)


def _poll(client, headers, since, table=None):
    url = f'/changes?since={since}' + (f'&table={table}' if table else '')
    resp = client.get(url, headers=headers)
    assert resp.status_code == 200
    return resp.get_json()


def test_api_change_published_on_commit(client):
    s = field_setup()
    h = s['admin_headers']
    since = _poll(client, h, 0)['last_seq']
    resp = client.post('/restaurants', json={'name': unique('Bistro'), 'address': '2 Main St'}, headers=h)
    assert resp.status_code == 201
    rid = resp.get_json()['id']
    body = _poll(client, h, since, 'restaurants')
    assert [(e['op'], e['row_id']) for e in body['data']] == [('INSERT', rid)]
    assert body['last_seq'] > since
    assert _poll(client, h, body['last_seq'])['data'] == []


def test_stock_change_from_intervention_is_published(client):
    s = field_setup()
    h = s['tech_headers']
    item = ensure_equipment(stock_level=5)
    t = create_ticket_via_api(client, h, s['restaurant'], s['device'])
    drive_to(client, h, t['id'], 'in-progress')
    since = _poll(client, h, 0)['last_seq']
    resp = client.post(f"/tickets/{t['id']}/interventions", json={
        'work_performed': 'Swapped fan', 'resolution': 'Cooling restored',
        'inventory_used': [{'equipment_id': item.id, 'quantity': 2}],
    }, headers=h)
    assert resp.status_code == 201, resp.get_json()
    stock_events = _poll(client, h, since, 'equipment_inventory')['data']
    assert ('UPDATE', item.id) in [(e['op'], e['row_id']) for e in stock_events]
    ticket_events = _poll(client, h, since, 'tickets')['data']
    assert ('UPDATE', t['id']) in [(e['op'], e['row_id']) for e in ticket_events]


def test_rollback_publishes_nothing(app_context):
    session = get_db()
    feed = get_context().changes
    before = feed.last_seq
    session.add(Restaurant(name=unique('Ghost'), address='nowhere'))
    session.flush()
    session.rollback()
    assert feed.since(before) == []


def test_savepoint_waits_for_outer_commit(app_context):
    session = get_db()
    feed = get_context().changes
    before = feed.last_seq
    r = Restaurant(name=unique('Nested'), address='1 Inner Rd')
    with session.begin_nested():
        session.add(r)
    assert feed.since(before) == []
    session.commit()
    events = feed.since(before, 'restaurants')
    assert [(e.op, e.row_id) for e in events] == [(ChangeOp.INSERT, r.id)]


def test_rolled_back_savepoint_drops_only_its_events(app_context):
    session = get_db()
    feed = get_context().changes
    before = feed.last_seq
    kept = Restaurant(name=unique('Kept'), address='1 Outer Rd')
    session.add(kept)
    session.flush()
    savepoint = session.begin_nested()
    ghost = Restaurant(name=unique('Ghost'), address='2 Inner Rd')
    session.add(ghost)
    session.flush()
    ghost_id = ghost.id
    savepoint.rollback()
    session.commit()
    ids = [e.row_id for e in feed.since(before, 'restaurants')]
    assert ids == [kept.id]
    assert ghost_id not in ids
    assert session.get(Restaurant, ghost_id) is None


def test_poll_validation(client):
    h = field_setup()['tech_headers']
    assert client.get('/changes?table=secrets', headers=h).status_code == 400
    assert client.get('/changes?since=-1', headers=h).status_code == 400
    assert client.get('/changes').status_code == 401
