ADDRESS = {
    'street': '221B Baker Street',
    'buildingName': 'Holmes House',
    'city': 'London',
    'state': 'Greater London',
    'country': 'UK',
    'pincode': 'NW16XE',
}


def test_create_and_fetch_address(client, user_headers):
    r = client.post('/api/addresses', json=ADDRESS, headers=user_headers)
    assert r.status_code == 201
    created = r.json()
    assert created['addressId'] is not None
    assert created['buildingName'] == 'Holmes House'

    r = client.get(f"/api/addresses/{created['addressId']}", headers=user_headers)
    assert r.status_code == 200
    assert r.json() == created


def test_address_validation(client, user_headers):
    r = client.post('/api/addresses', json={**ADDRESS, 'city': 'NY', 'pincode': '123'}, headers=user_headers)
    assert r.status_code == 400
    body = r.json()
    assert body['message'] == 'Validation Failed'
    assert set(body['errors']) == {'city', 'pincode'}


def test_user_addresses_only_lists_own(client, user_headers, admin_headers):
    client.post('/api/addresses', json=ADDRESS, headers=user_headers)
    client.post('/api/addresses', json={**ADDRESS, 'city': 'Manchester'}, headers=admin_headers)

    r = client.get('/api/users/addresses', headers=user_headers)
    assert [a['city'] for a in r.json()] == ['London']

    r = client.get('/api/admin/addresses', headers=admin_headers)
    assert len(r.json()) == 2
    assert client.get('/api/admin/addresses', headers=user_headers).status_code == 403


def test_update_address(client, user_headers):
    address_id = client.post('/api/addresses', json=ADDRESS, headers=user_headers).json()['addressId']
    r = client.put(f'/api/addresses/{address_id}', json={**ADDRESS, 'city': 'Brighton'}, headers=user_headers)
    assert r.status_code == 200
    assert r.json()['city'] == 'Brighton'
    assert r.json()['addressId'] == address_id


def test_delete_address(client, user_headers):
    address_id = client.post('/api/addresses', json=ADDRESS, headers=user_headers).json()['addressId']
    r = client.delete(f'/api/addresses/{address_id}', headers=user_headers)
    assert r.status_code == 200
    assert r.text == f'Address deleted successfully with addressId: {address_id}'

    r = client.get(f'/api/addresses/{address_id}', headers=user_headers)
    assert r.status_code == 404
    assert r.json() == {'message': f'Address not found with addressId: {address_id}', 'success': False}
