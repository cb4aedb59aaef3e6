from datetime import datetime, timedelta, timezone
from seed_helpers import field_setup, ensure_user, jwt_headers


def _when(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat().replace('+00:00', 'Z')


def test_schedule_and_complete(client):
    s = field_setup()
    other = ensure_user(role='technician')
    h = s['tech_headers']
    resp = client.post('/maintenance', json={
        'device_id': s['device'].id, 'maintenance_type': 'preventive', 'description': 'Quarterly clean',
        'scheduled_date': _when(7), 'technician_id': other.id,
    }, headers=h)
    assert resp.status_code == 201
    record = resp.get_json()
    assert record['status'] == 'scheduled'
    assert record['created_by'] == s['tech'].id
    notes = client.get('/notifications', headers=jwt_headers(other)).get_json()['data']
    assert any(n['title'] == 'Maintenance Scheduled' and n['related_id'] == record['id'] for n in notes)

    client.post(f"/devices/{s['device'].id}/status", json={'status': 'maintenance'}, headers=h)
    done = client.post(f"/maintenance/{record['id']}/complete", json={'notes': 'All good'}, headers=h)
    assert done.status_code == 200
    assert done.get_json()['status'] == 'completed'
    assert done.get_json()['completed_at'] is not None
    device = client.get(f"/devices/{s['device'].id}", headers=h).get_json()
    assert device['status'] == 'operational'
    assert device['last_maintenance_at'] is not None
    again = client.post(f"/maintenance/{record['id']}/complete", json={}, headers=h)
    assert again.status_code == 400


def test_complete_without_body(client):
    s = field_setup()
    h = s['tech_headers']
    rid = client.post('/maintenance', json={
        'device_id': s['device'].id, 'maintenance_type': 'inspection', 'description': 'Check fans', 'scheduled_date': _when(1),
    }, headers=h).get_json()['id']
    done = client.post(f'/maintenance/{rid}/complete', headers=h)
    assert done.status_code == 200
    assert done.get_json()['technician_id'] == s['tech'].id


def test_upcoming_and_overdue_filters(client):
    s = field_setup()
    h = s['tech_headers']
    future = client.post('/maintenance', json={
        'device_id': s['device'].id, 'maintenance_type': 'calibration', 'description': 'Scale', 'scheduled_date': _when(3),
    }, headers=h).get_json()
    past = client.post('/maintenance', json={
        'device_id': s['device'].id, 'maintenance_type': 'corrective', 'description': 'Fan', 'scheduled_date': _when(-3),
    }, headers=h).get_json()
    base = f"/maintenance?device_id={s['device'].id}"
    upcoming = [m['id'] for m in client.get(base + '&upcoming=1', headers=h).get_json()['data']]
    overdue = [m['id'] for m in client.get(base + '&overdue=1', headers=h).get_json()['data']]
    assert upcoming == [future['id']]
    assert overdue == [past['id']]
    ordered = [m['id'] for m in client.get(base, headers=h).get_json()['data']]
    assert ordered == [past['id'], future['id']]


def test_schedule_validation(client):
    s = field_setup()
    h = s['tech_headers']
    base = {'device_id': s['device'].id, 'maintenance_type': 'preventive', 'description': 'x', 'scheduled_date': _when(1)}
    assert client.post('/maintenance', json={**base, 'maintenance_type': 'cosmetic'}, headers=h).status_code == 400
    assert client.post('/maintenance', json={**base, 'scheduled_date': 'next week'}, headers=h).status_code == 400
    assert client.post('/maintenance', json={**base, 'description': ''}, headers=h).status_code == 400
    assert client.post('/maintenance', json={**base, 'device_id': 999999}, headers=h).status_code == 404
    staff = jwt_headers(ensure_user(role='restaurant_staff', restaurant_id=s['restaurant'].id))
    assert client.post('/maintenance', json=base, headers=staff).status_code == 403
