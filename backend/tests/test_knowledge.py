from seed_helpers import ensure_user, jwt_headers, unique


def _article(client, headers, **extra):
    body = {
        'title': unique('Resetting the fryer controller'),
        'summary': 'Steps to power-cycle the controller safely',
        'content': '1. Switch off\n2. Wait 30s\n3. Switch on',
        'tags': ['fryer', 'reset'],
    }
    body.update(extra)
    resp = client.post('/knowledge', json=body, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_create_and_view_count(client):
    tech = ensure_user(role='technician')
    h = jwt_headers(tech)
    a = _article(client, h)
    assert a['view_count'] == 0
    assert a['author_id'] == tech.id
    first = client.get(f"/knowledge/{a['id']}", headers=h).get_json()
    second = client.get(f"/knowledge/{a['id']}", headers=h).get_json()
    assert first['view_count'] == 1
    assert second['view_count'] == 2
    assert second['content'].startswith('1. Switch off')
    # A view is not an edit
    assert second['updated_at'] == a['updated_at']


def test_search_by_title_summary_and_tag(client):
    h = jwt_headers(ensure_user(role='technician'))
    tag = unique('tag')
    a = _article(client, h, tags=[tag, 'pos'])
    b = _article(client, h, summary=f'Mentions {tag} in the summary')
    by_tag = [x['id'] for x in client.get(f'/knowledge?tag={tag}', headers=h).get_json()['data']]
    assert by_tag == [a['id']]
    by_q = {x['id'] for x in client.get(f'/knowledge?q={tag}', headers=h).get_json()['data']}
    assert by_q == {a['id'], b['id']}
    listed = client.get(f'/knowledge?q={tag}', headers=h).get_json()['data']
    assert all('content' not in x for x in listed)


def test_edit_and_permissions(client):
    h = jwt_headers(ensure_user(role='technician'))
    a = _article(client, h)
    resp = client.patch(f"/knowledge/{a['id']}", json={'tags': ['fryer']}, headers=h)
    assert resp.status_code == 200
    assert resp.get_json()['tags'] == ['fryer']
    assert client.patch(f"/knowledge/{a['id']}", json={'tags': 'fryer'}, headers=h).status_code == 400
    assert client.patch(f"/knowledge/{a['id']}", json={'title': ''}, headers=h).status_code == 400
    staff = jwt_headers(ensure_user(role='restaurant_staff'))
    assert client.get(f"/knowledge/{a['id']}", headers=staff).status_code == 200
    assert client.post('/knowledge', json={'title': 't', 'summary': 's', 'content': 'c'}, headers=staff).status_code == 403
    assert client.get('/knowledge/999999', headers=h).status_code == 404
