from seed_helpers import ensure_restaurant, ensure_user, unique
from fieldops import get_db
from fieldops.models.user import User


def _signup(client, **extra):
    body = {'name': 'New Tech', 'email': f"{unique('signup')}@example.com", 'password': 'secret'}
    body.update(extra)
    return client.post('/auth/signup', json=body)


def test_signup_login_me_logout(client):
    resp = _signup(client, specialization='Printers')
    assert resp.status_code == 201
    body = resp.get_json()
    email = body['user']['email']
    assert body['user']['role'] == 'technician'
    assert body['access_token']

    assert _signup(client, email=email).status_code == 409

    bad = client.post('/auth/login', json={'email': email, 'password': 'wrong'})
    assert bad.status_code == 401
    assert bad.get_json()['error']['status'] == 401

    login = client.post('/auth/login', json={'email': email.upper(), 'password': 'secret'})
    assert login.status_code == 200
    headers = {'Authorization': f"Bearer {login.get_json()['access_token']}"}
    me = client.get('/auth/me', headers=headers).get_json()
    assert me['user']['email'] == email
    assert 'TKT.CREATE' in me['perms']
    assert me['restaurant_ids'] == []

    assert client.post('/auth/logout', headers=headers).status_code == 200
    assert client.get('/auth/me', headers=headers).status_code == 401


def test_signup_role_rules(client):
    assert _signup(client, role='admin').status_code == 400
    assert _signup(client, role='restaurant_staff').status_code == 400
    r = ensure_restaurant()
    resp = _signup(client, role='restaurant_staff', restaurant_id=r.id)
    assert resp.status_code == 201
    token = resp.get_json()['access_token']
    me = client.get('/auth/me', headers={'Authorization': f'Bearer {token}'}).get_json()
    assert me['restaurant_ids'] == [r.id]
    assert _signup(client, email='').status_code == 400


def test_signup_rejects_malformed_fields(client):
    resp = _signup(client, restaurant_id='abc')
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'restaurant_id must be int'
    assert _signup(client, role='restaurant_staff', restaurant_id='abc').status_code == 400
    assert _signup(client, restaurant_id=999999).status_code == 404
    assert _signup(client, name=123).status_code == 400
    assert _signup(client, email=['a@example.com']).status_code == 400
    assert client.post('/auth/login', json={'email': 5, 'password': 'pw'}).status_code == 400
    r = ensure_restaurant()
    resp = _signup(client, name='  Padded Name  ', restaurant_id=str(r.id))
    assert resp.status_code == 201
    assert resp.get_json()['user']['name'] == 'Padded Name'
    assert resp.get_json()['user']['restaurant_id'] == r.id


def test_disabled_account_cannot_login(client):
    u = ensure_user(role='technician', password='pw')
    u.is_active = False
    get_db().commit()
    resp = client.post('/auth/login', json={'email': u.email, 'password': 'pw'})
    assert resp.status_code == 403
    assert client.post('/auth/login', json={'email': u.email}).status_code == 400


def test_protected_route_requires_token(client):
    assert client.get('/tickets').status_code == 401
    assert client.get('/auth/me', headers={'Authorization': 'Bearer not-a-token'}).status_code in (401, 422)
    assert get_db().query(User).count() >= 1
