from seed_helpers import ensure_restaurant, ensure_user, jwt_headers, unique


def _seed(prefix):
    return [ensure_restaurant(f'{prefix} {suffix}') for suffix in ('Charlie', 'Alpha', 'Bravo')]


def test_pagination_envelope(client):
    prefix = unique('Pag')
    _seed(prefix)
    h = jwt_headers(ensure_user(role='admin'))
    body = client.get(f'/restaurants?q={prefix}&limit=2&offset=0', headers=h).get_json()
    assert body['pagination'] == {'total': 3, 'limit': 2, 'offset': 0, 'returned': 2}
    rest = client.get(f'/restaurants?q={prefix}&limit=2&offset=2', headers=h).get_json()
    assert rest['pagination']['returned'] == 1
    clamped = client.get(f'/restaurants?q={prefix}&limit=100000', headers=h).get_json()
    assert clamped['pagination']['limit'] == 200
    assert client.get('/restaurants?limit=abc', headers=h).status_code == 400


def test_multi_sort(client):
    prefix = unique('Sort')
    _seed(prefix)
    h = jwt_headers(ensure_user(role='admin'))
    default = [r['name'] for r in client.get(f'/restaurants?q={prefix}', headers=h).get_json()['data']]
    assert default == [f'{prefix} Alpha', f'{prefix} Bravo', f'{prefix} Charlie']
    desc = [r['name'] for r in client.get(f'/restaurants?q={prefix}&sort=-name', headers=h).get_json()['data']]
    assert desc == list(reversed(default))
    by_id = [r['name'] for r in client.get(f'/restaurants?q={prefix}&sort=id', headers=h).get_json()['data']]
    assert by_id == [f'{prefix} Charlie', f'{prefix} Alpha', f'{prefix} Bravo']
    assert client.get('/restaurants?sort=-secret', headers=h).status_code == 400
