import struct
import zlib

import pytest
from bson import ObjectId
from httpx import AsyncClient, ASGITransport

from socialapp.dependencies import get_user_store
from socialapp.main import app
from socialapp.ratelimit import RATE_LIMITS


def register_payload(first_name, email, password='secret1'):
    return {
        'first_name': first_name,
        'last_name': 'Tester',
        'email': email,
        'password': password,
        'passwordtwo': password,
        'birthdate': '1990-05-17',
    }


@pytest.mark.asyncio
async def test_healthz(client):
    res = await client.get('/healthz')
    assert res.status_code == 200
    assert res.json() == {'status': 'ok'}


@pytest.mark.asyncio
async def test_register_login_and_profile(client):
    res = await client.post('/api/users', json=register_payload('Ada', 'ada@example.com'))
    assert res.status_code == 200, res.text
    user = res.json()['message']
    assert user['first_name'] == 'Ada'
    assert user['birthdate'] == '1990-05-17'
    assert user['friends'] == []
    assert 'password' not in user and 'email' not in user

    res = await client.post('/auth/login', data={'email': 'ada@example.com', 'password': 'secret1'})
    assert res.status_code == 200, res.text
    assert res.json()['token_type'] == 'bearer'

    res = await client.post('/auth/login', data={'email': 'ada@example.com', 'password': 'wrong!'})
    assert res.status_code == 401
    assert res.json() == {'error': 'Invalid credentials'}

    res = await client.get(f"/api/users/{user['id']}")
    assert res.status_code == 200
    assert res.json()['first_name'] == 'Ada'


@pytest.mark.asyncio
async def test_register_validation_and_duplicates(client):
    bad = register_payload('Ada', 'ada@example.com')
    bad['passwordtwo'] = 'different'
    res = await client.post('/api/users', json=bad)
    assert res.status_code == 400
    assert res.json()['error'] == 'Invalid request'
    assert any('Passwords do not match' in e['message'] for e in res.json()['errors'])

    res = await client.post('/api/users', json=register_payload('Ada', 'ada@example.com', password='123'))
    assert res.status_code == 400

    assert (await client.post('/api/users', json=register_payload('Ada', 'ada@example.com'))).status_code == 200
    res = await client.post('/api/users', json=register_payload('Ada', 'ADA@example.com'))
    assert res.status_code == 400
    assert res.json() == {'error': 'Email already registered'}


@pytest.mark.asyncio
async def test_friend_request_flow_over_http(client, make_user, auth_headers):
    ada = await make_user('Ada')
    grace = await make_user('Grace')

    res = await client.post(f'/api/users/{ada}/friend-requests/{grace}', headers=auth_headers(ada))
    assert res.status_code == 200, res.text
    assert res.json() == {'message': 'Successfully Ada added Grace'}

    res = await client.post(f'/api/users/{ada}/friend-requests/{grace}', headers=auth_headers(ada))
    assert res.status_code == 400
    assert res.json() == {'error': 'Friend request already sent or user is already a friend'}

    res = await client.get(f'/api/users/{grace}/friend-requests')
    assert [u['id'] for u in res.json()] == [str(ada)]

    res = await client.post(f'/api/users/{grace}/friends/{ada}', headers=auth_headers(grace))
    assert res.status_code == 200, res.text

    res = await client.get(f'/api/users/{ada}/friends')
    assert res.status_code == 200
    friends = res.json()
    assert [f['id'] for f in friends] == [str(grace)]
    assert friends[0]['friends'] == [str(ada)]

    res = await client.get(f'/api/users/{ada}/non-friends')
    assert res.json() == []

    res = await client.get(f'/api/users/{ada}')
    assert [f['first_name'] for f in res.json()['friends']] == ['Grace']


@pytest.mark.asyncio
async def test_rescind_and_deny_over_http(client, make_user, auth_headers):
    ada = await make_user('Ada')
    grace = await make_user('Grace')

    await client.post(f'/api/users/{ada}/friend-requests/{grace}', headers=auth_headers(ada))
    res = await client.delete(f'/api/users/{ada}/friend-requests/{grace}', headers=auth_headers(ada))
    assert res.status_code == 200
    assert (await client.get(f'/api/users/{grace}/friend-requests')).json() == []

    await client.post(f'/api/users/{ada}/friend-requests/{grace}', headers=auth_headers(ada))
    res = await client.delete(f'/api/users/{grace}/friend-requests-in/{ada}', headers=auth_headers(grace))
    assert res.status_code == 200
    assert (await client.get(f'/api/users/{grace}/friend-requests')).json() == []

    res = await client.post(f'/api/users/{grace}/friend-requests/{ada}', headers=auth_headers(grace))
    assert res.status_code == 200


@pytest.mark.asyncio
async def test_accept_without_request_is_not_found(client, make_user, auth_headers):
    ada = await make_user('Ada')
    grace = await make_user('Grace')
    res = await client.post(f'/api/users/{grace}/friends/{ada}', headers=auth_headers(grace))
    assert res.status_code == 404
    assert res.json() == {'error': 'No pending friend request from this user'}


@pytest.mark.asyncio
async def test_error_shapes(client, make_user, auth_headers):
    ada = await make_user('Ada')
    missing = ObjectId()

    res = await client.get(f'/api/users/{missing}/friends')
    assert res.status_code == 404
    assert res.json() == {'error': 'No user found'}

    res = await client.get('/api/users/not-an-id/friends')
    assert res.status_code == 400
    assert res.json() == {'error': 'Invalid user id'}

    res = await client.post(f'/api/users/{ada}/friend-requests/{missing}')
    assert res.status_code == 401

    res = await client.post(f'/api/users/{ada}/friend-requests/{missing}', headers=auth_headers(missing))
    assert res.status_code == 403

    res = await client.post(f'/api/users/{ada}/friend-requests/{ada}', headers=auth_headers(ada))
    assert res.status_code == 400
    assert res.json() == {'error': 'You cannot send a friend request to yourself'}


@pytest.mark.asyncio
async def test_edit_and_delete_user(client, make_user, auth_headers):
    ada = await make_user('Ada')
    grace = await make_user('Grace')
    await client.post(f'/api/users/{ada}/friend-requests/{grace}', headers=auth_headers(ada))

    res = await client.patch(f'/api/users/{ada}', json={'bio': 'Analytical engine enthusiast'},
                             headers=auth_headers(ada))
    assert res.status_code == 200
    assert res.json()['bio'] == 'Analytical engine enthusiast'

    res = await client.delete(f'/api/users/{ada}', headers=auth_headers(ada))
    assert res.status_code == 200
    assert (await client.get(f'/api/users/{ada}')).status_code == 404
    assert (await client.get(f'/api/users/{grace}/friend-requests')).json() == []


@pytest.mark.asyncio
async def test_image_uploads(client, make_user, auth_headers, png_bytes):
    ada = await make_user('Ada')
    headers = auth_headers(ada)

    res = await client.put(f'/api/users/{ada}/banner', headers=headers,
                           files={'image': ('banner.png', png_bytes, 'image/png')})
    assert res.status_code == 200, res.text
    assert res.json() == {'message': "Successfully updated user's banner"}

    res = await client.get(f'/api/users/{ada}/banner')
    assert res.status_code == 200
    assert res.headers['content-type'] == 'image/png'
    assert res.content == png_bytes

    res = await client.put(f'/api/users/{ada}/profile-picture', headers=headers,
                           files={'image': ('notes.txt', b'hello', 'text/plain')})
    assert res.status_code == 400
    assert res.json() == {'error': 'Invalid file type.'}

    too_big = b'\x89PNG' + b'\x00' * (4 * 1024 * 1024)
    res = await client.put(f'/api/users/{ada}/profile-picture', headers=headers,
                           files={'image': ('big.png', too_big, 'image/png')})
    assert res.status_code == 400
    assert res.json() == {'error': 'File size exceeds the limit of 4MB.'}

    res = await client.put(f'/api/users/{ada}/profile-picture', headers=headers)
    assert res.status_code == 400

    assert (await client.get(f'/api/users/{ada}/profile-picture')).status_code == 404
    res = await client.get(f'/api/users/{ada}')
    assert res.json()['banner'] == f'/api/users/{ada}/banner'
    assert res.json()['profile_picture'] is None


def oversized_png(width=30000, height=30000):
    """A PNG whose header claims far more pixels than Pillow will decode."""
    def chunk(kind, data):
        return struct.pack('>I', len(data)) + kind + data + struct.pack('>I', zlib.crc32(kind + data))

    header = struct.pack('>IIBBBBB', width, height, 8, 2, 0, 0, 0)
    return b'\x89PNG\r\n\x1a\n' + chunk(b'IHDR', header) + chunk(b'IEND', b'')


@pytest.mark.asyncio
async def test_decompression_bomb_upload_is_rejected(client, make_user, auth_headers):
    ada = await make_user('Ada')

    res = await client.put(f'/api/users/{ada}/banner', headers=auth_headers(ada),
                           files={'image': ('huge.png', oversized_png(), 'image/png')})

    assert res.status_code == 400
    assert res.json() == {'error': 'Invalid image file'}
    assert (await client.get(f'/api/users/{ada}/banner')).status_code == 404


@pytest.mark.asyncio
async def test_unexpected_errors_are_json(store):
    def broken_store():
        raise RuntimeError('connection pool exhausted')

    app.dependency_overrides[get_user_store] = broken_store
    try:
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url='http://test') as ac:
            res = await ac.get(f'/api/users/{ObjectId()}')
    finally:
        app.dependency_overrides.clear()

    assert res.status_code == 500
    assert res.json() == {'error': 'An error has occurred'}


@pytest.mark.asyncio
async def test_friend_requests_are_rate_limited(client, redis_client, make_user, auth_headers, monkeypatch):
    monkeypatch.setitem(RATE_LIMITS, 'send_request', (1, 60))
    ada = await make_user('Ada')
    grace = await make_user('Grace')
    linus = await make_user('Linus')

    res = await client.post(f'/api/users/{ada}/friend-requests/{grace}', headers=auth_headers(ada))
    assert res.status_code == 200, res.text

    res = await client.post(f'/api/users/{ada}/friend-requests/{linus}', headers=auth_headers(ada))
    assert res.status_code == 429
    assert res.json() == {'error': 'Rate limit exceeded. Too many send request calls.'}

    # the counter is per user
    res = await client.post(f'/api/users/{grace}/friend-requests/{linus}', headers=auth_headers(grace))
    assert res.status_code == 200, res.text
    assert await redis_client.ttl(f'rate_limit:send_request:{ada}') > 0


@pytest.mark.asyncio
async def test_login_attempts_are_rate_limited(client, redis_client, monkeypatch):
    monkeypatch.setitem(RATE_LIMITS, 'login', (2, 60))
    await client.post('/api/users', json=register_payload('Ada', 'ada@example.com'))

    for _ in range(2):
        res = await client.post('/auth/login', data={'email': 'ada@example.com', 'password': 'wrong!'})
        assert res.status_code == 401

    res = await client.post('/auth/login', data={'email': 'ada@example.com', 'password': 'secret1'})
    assert res.status_code == 429
    assert res.json() == {'error': 'Rate limit exceeded. Too many login calls.'}
