from fieldops import get_db
from fieldops.models.equipment import InventoryUsage
from fieldops.models.ticket import TicketHistory
from seed_helpers import field_setup, ensure_equipment, ensure_user, jwt_headers, create_ticket_via_api
from lifecycle_helpers import drive_to


def _in_progress_ticket(client, s):
    t = create_ticket_via_api(client, s['tech_headers'], s['restaurant'], s['device'])
    drive_to(client, s['tech_headers'], t['id'], 'in-progress')
    return t


def _payload(item, qty, **extra):
    body = {
        'work_performed': 'Replaced thermal head',
        'resolution': 'Printer back in service',
        'root_cause': 'Worn head',
        'time_spent_hours': 1.5,
        'labor_cost_cents': 2000,
        'customer_satisfaction': 'satisfied',
        'inventory_used': [{'equipment_id': item.id, 'quantity': qty}],
    }
    body.update(extra)
    return body


def _usage_count(ticket_id):
    return get_db().query(InventoryUsage).filter(InventoryUsage.ticket_id == ticket_id).count()


def _resolved_rows(ticket_id):
    return get_db().query(TicketHistory).filter(TicketHistory.ticket_id == ticket_id, TicketHistory.status == 'resolved').count()


def test_intervention_consumes_stock_and_resolves(client):
    s = field_setup()
    item = ensure_equipment(stock_level=10, unit_cost_cents=500)
    t = _in_progress_ticket(client, s)
    resp = client.post(f"/tickets/{t['id']}/interventions", json=_payload(item, 3), headers=s['tech_headers'])
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['inventory_used'] == [{'equipment_id': item.id, 'quantity_used': 3, 'total_cost_cents': 1500}]
    assert body['total_cost_cents'] == 3500
    assert body['ticket']['status'] == 'resolved'
    assert body['ticket']['resolution'] == 'Printer back in service'
    assert body['ticket']['time_spent_minutes'] == 90
    assert body['ticket']['total_cost_cents'] == 3500

    stock = client.get(f'/equipment/{item.id}', headers=s['tech_headers']).get_json()['stock_level']
    assert stock == 7
    usage = client.get(f'/equipment/{item.id}/usage', headers=s['tech_headers']).get_json()['data']
    assert len(usage) == 1
    assert usage[0]['quantity_used'] == 3
    assert usage[0]['ticket_id'] == t['id']
    assert usage[0]['intervention_id'] == body['id']
    assert usage[0]['used_by'] == s['tech'].id

    history = client.get(f"/tickets/{t['id']}/history", headers=s['tech_headers']).get_json()['data']
    assert history[-1]['status'] == 'resolved'
    assert history[-1]['notes'] == 'Intervention completed. 1 items used. Total cost: 35.00'
    listed = client.get(f"/tickets/{t['id']}/interventions", headers=s['tech_headers']).get_json()['data']
    assert [i['id'] for i in listed] == [body['id']]


def test_retried_intervention_does_not_double_decrement(client):
    s = field_setup()
    item = ensure_equipment(stock_level=10)
    t = _in_progress_ticket(client, s)
    first = client.post(f"/tickets/{t['id']}/interventions", json=_payload(item, 3), headers=s['tech_headers'])
    assert first.status_code == 201
    retry = client.post(f"/tickets/{t['id']}/interventions", json=_payload(item, 3), headers=s['tech_headers'])
    assert retry.status_code == 400
    assert client.get(f'/equipment/{item.id}', headers=s['tech_headers']).get_json()['stock_level'] == 7
    assert _usage_count(t['id']) == 1
    assert _resolved_rows(t['id']) == 1


def test_insufficient_stock_leaves_everything_untouched(client):
    s = field_setup()
    item = ensure_equipment(stock_level=2)
    t = _in_progress_ticket(client, s)
    resp = client.post(f"/tickets/{t['id']}/interventions", json=_payload(item, 3), headers=s['tech_headers'])
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == f'Insufficient stock for {item.name}'
    assert client.get(f"/tickets/{t['id']}", headers=s['tech_headers']).get_json()['status'] == 'in-progress'
    assert client.get(f'/equipment/{item.id}', headers=s['tech_headers']).get_json()['stock_level'] == 2
    assert _usage_count(t['id']) == 0
    assert _resolved_rows(t['id']) == 0


def test_duplicate_lines_are_summed_for_the_stock_check(client):
    s = field_setup()
    item = ensure_equipment(stock_level=3)
    t = _in_progress_ticket(client, s)
    body = _payload(item, 2)
    body['inventory_used'] = [{'equipment_id': item.id, 'quantity': 2}, {'equipment_id': item.id, 'quantity': 2}]
    resp = client.post(f"/tickets/{t['id']}/interventions", json=body, headers=s['tech_headers'])
    assert resp.status_code == 400
    assert client.get(f'/equipment/{item.id}', headers=s['tech_headers']).get_json()['stock_level'] == 3


def test_multiple_items(client):
    s = field_setup()
    a = ensure_equipment(stock_level=5, unit_cost_cents=100)
    b = ensure_equipment(stock_level=4, unit_cost_cents=250)
    t = _in_progress_ticket(client, s)
    body = _payload(a, 1, labor_cost_cents=0)
    body['inventory_used'] = [{'equipment_id': a.id, 'quantity': 2}, {'equipment_id': b.id, 'quantity': 4}]
    resp = client.post(f"/tickets/{t['id']}/interventions", json=body, headers=s['tech_headers'])
    assert resp.status_code == 201
    assert resp.get_json()['total_cost_cents'] == 2 * 100 + 4 * 250
    assert client.get(f'/equipment/{a.id}', headers=s['tech_headers']).get_json()['stock_level'] == 3
    item_b = client.get(f'/equipment/{b.id}', headers=s['tech_headers']).get_json()
    assert item_b['stock_level'] == 0
    assert item_b['low_stock'] is True


def test_intervention_without_parts(client):
    s = field_setup()
    t = _in_progress_ticket(client, s)
    resp = client.post(f"/tickets/{t['id']}/interventions", json={
        'work_performed': 'Reset router', 'resolution': 'Connectivity restored',
    }, headers=s['tech_headers'])
    assert resp.status_code == 201
    assert resp.get_json()['inventory_used'] == []
    assert resp.get_json()['total_cost_cents'] == 0


def test_intervention_validation(client):
    s = field_setup()
    item = ensure_equipment(stock_level=10)
    t = _in_progress_ticket(client, s)
    url = f"/tickets/{t['id']}/interventions"
    h = s['tech_headers']
    assert client.post(url, json=_payload(item, 1, work_performed=''), headers=h).status_code == 400
    assert client.post(url, json=_payload(item, 1, resolution=''), headers=h).status_code == 400
    resp = client.post(url, json=_payload(item, 1, resolution=5), headers=h)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'resolution must be a string'
    assert client.post(url, json=_payload(item, 1, work_performed=['swap']), headers=h).status_code == 400
    assert client.post(url, json=_payload(item, 0), headers=h).status_code == 400
    assert client.post(url, json=_payload(item, 1, time_spent_hours=-1), headers=h).status_code == 400
    assert client.post(url, json=_payload(item, 1, customer_satisfaction='ecstatic'), headers=h).status_code == 400
    missing = _payload(item, 1)
    missing['inventory_used'] = [{'equipment_id': 999999, 'quantity': 1}]
    assert client.post(url, json=missing, headers=h).status_code == 404
    assert client.get(f'/equipment/{item.id}', headers=h).get_json()['stock_level'] == 10
    assert _resolved_rows(t['id']) == 0


def test_intervention_requires_in_progress_and_assignee(client):
    s = field_setup()
    item = ensure_equipment(stock_level=10)
    t = create_ticket_via_api(client, s['tech_headers'], s['restaurant'], s['device'])
    drive_to(client, s['tech_headers'], t['id'], 'assigned')
    resp = client.post(f"/tickets/{t['id']}/interventions", json=_payload(item, 1), headers=s['tech_headers'])
    assert resp.status_code == 400
    drive_to(client, s['tech_headers'], t['id'], 'in-progress')
    other = ensure_user(role='technician')
    resp = client.post(f"/tickets/{t['id']}/interventions", json=_payload(item, 1), headers=jwt_headers(other))
    assert resp.status_code == 403
    assert client.get(f'/equipment/{item.id}', headers=s['tech_headers']).get_json()['stock_level'] == 10


def test_consumed_parts_appear_in_movement_history(client):
    s = field_setup()
    item = ensure_equipment(stock_level=6)
    t = _in_progress_ticket(client, s)
    resp = client.post(f"/tickets/{t['id']}/interventions", json=_payload(item, 2), headers=s['tech_headers'])
    assert resp.status_code == 201, resp.get_json()
    moves = client.get(f'/equipment/{item.id}/movements', headers=s['tech_headers']).get_json()['data']
    assert len(moves) == 1
    assert moves[0]['movement_type'] == 'usage'
    assert moves[0]['quantity'] == 2 and moves[0]['signed_quantity'] == -2
    assert moves[0]['ticket_id'] == t['id']
    assert moves[0]['user_id'] == s['tech'].id
