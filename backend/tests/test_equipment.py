from sqlalchemy import update
from fieldops import get_db, get_context
from fieldops.models.equipment import EquipmentItem
from fieldops.services.events import ChangeOp
from seed_helpers import ensure_user, ensure_equipment, jwt_headers, unique


def _warehouse():
    return jwt_headers(ensure_user(role='warehouse'))


def test_create_and_duplicate_part_number(client):
    h = _warehouse()
    part = unique('PN')
    resp = client.post('/equipment', json={
        'name': 'Card Reader', 'type': 'spare', 'part_number': part, 'stock_level': 5,
        'min_stock_level': 2, 'max_stock_level': 20, 'unit_cost_cents': 1299, 'supplier': 'Acme',
    }, headers=h)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['stock_level'] == 5 and body['unit_cost_cents'] == 1299
    assert body['low_stock'] is False
    dup = client.post('/equipment', json={'name': 'Other', 'type': 'spare', 'part_number': part}, headers=h)
    assert dup.status_code == 409
    assert client.post('/equipment', json={'name': 'Neg', 'type': 'spare', 'stock_level': -1}, headers=h).status_code == 400


def test_patch_cannot_touch_stock(client):
    h = _warehouse()
    item = ensure_equipment(stock_level=4)
    resp = client.patch(f'/equipment/{item.id}', json={'stock_level': 100}, headers=h)
    assert resp.status_code == 400
    resp = client.patch(f'/equipment/{item.id}', json={'warehouse_location': 'B-12', 'min_stock_level': 6}, headers=h)
    assert resp.status_code == 200
    assert resp.get_json()['warehouse_location'] == 'B-12'
    assert resp.get_json()['low_stock'] is True


def test_adjust_stock(client):
    h = _warehouse()
    item = ensure_equipment(stock_level=10)
    resp = client.post(f'/equipment/{item.id}/adjust', json={'delta': -3, 'reason': 'damaged'}, headers=h)
    assert resp.status_code == 200
    assert resp.get_json()['stock_level'] == 7
    assert client.post(f'/equipment/{item.id}/adjust', json={'delta': 0}, headers=h).status_code == 400
    resp = client.post(f'/equipment/{item.id}/adjust', json={'delta': -8}, headers=h)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'stock_level cannot go below zero'
    assert client.post(f'/equipment/{item.id}/adjust', json={'delta': 5}, headers=h).get_json()['stock_level'] == 12


def test_adjust_records_movements_and_publishes_change(client):
    h = _warehouse()
    item = ensure_equipment(stock_level=10)
    feed = get_context().changes
    before = feed.last_seq
    assert client.post(f'/equipment/{item.id}/adjust', json={'delta': 4, 'reason': 'delivery'}, headers=h).status_code == 200
    assert client.post(f'/equipment/{item.id}/adjust', json={'delta': -3, 'reason': '  damaged  '}, headers=h).status_code == 200
    assert client.post(f'/equipment/{item.id}/adjust', json={'delta': -50}, headers=h).status_code == 400
    assert client.post(f'/equipment/{item.id}/adjust', json={'delta': 1, 'reason': 7}, headers=h).status_code == 400
    events = feed.since(before, 'equipment_inventory')
    assert [(e.op, e.row_id) for e in events] == [(ChangeOp.UPDATE, item.id), (ChangeOp.UPDATE, item.id)]
    body = client.get(f'/equipment/{item.id}/movements', headers=h).get_json()
    assert body['pagination']['total'] == 2
    newest, oldest = body['data']
    assert (oldest['movement_type'], oldest['quantity'], oldest['reason']) == ('in', 4, 'delivery')
    assert (newest['movement_type'], newest['signed_quantity'], newest['reason']) == ('out', -3, 'damaged')
    outs = client.get(f'/equipment/{item.id}/movements?type=out', headers=h).get_json()['data']
    assert [m['id'] for m in outs] == [newest['id']]
    assert client.get(f'/equipment/{item.id}/movements?type=teleport', headers=h).status_code == 400
    assert client.get('/equipment/999999/movements', headers=h).status_code == 404


def test_adjust_checks_the_stored_stock_not_a_stale_copy(client):
    h = _warehouse()
    item = ensure_equipment(stock_level=10)
    session = get_db()
    # another writer drains the stock behind this session's back
    session.execute(
        update(EquipmentItem).where(EquipmentItem.id == item.id).values(stock_level=2)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    resp = client.post(f'/equipment/{item.id}/adjust', json={'delta': -5}, headers=h)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'stock_level cannot go below zero'
    session.refresh(item)
    assert item.stock_level == 2
    resp = client.post(f'/equipment/{item.id}/adjust', json={'delta': -2}, headers=h)
    assert resp.status_code == 200
    assert resp.get_json()['stock_level'] == 0


def test_low_stock_list(client):
    h = _warehouse()
    low = ensure_equipment(stock_level=1, min_stock_level=3)
    ok = ensure_equipment(stock_level=30, min_stock_level=3)
    ids = [e['id'] for e in client.get('/equipment/low-stock?limit=200', headers=h).get_json()['data']]
    assert low.id in ids
    assert ok.id not in ids


def test_search_and_permissions(client):
    h = _warehouse()
    item = ensure_equipment(name=unique('Scanner Cable'))
    found = client.get(f'/equipment?q={item.name}', headers=h).get_json()['data']
    assert [e['id'] for e in found] == [item.id]
    tech = jwt_headers(ensure_user(role='technician'))
    assert client.get(f'/equipment/{item.id}', headers=tech).status_code == 200
    assert client.post('/equipment', json={'name': 'x', 'type': 'y'}, headers=tech).status_code == 403
    assert client.post(f'/equipment/{item.id}/adjust', json={'delta': 1}, headers=tech).status_code == 403
    assert client.get('/equipment/999999', headers=h).status_code == 404
