from datetime import datetime, timedelta, timezone

import jwt
from fastapi.testclient import TestClient

from app.config import settings
from app.main import app

client = TestClient(app)


def _register_payload(**overrides):
    payload = {
        'name': 'Priya Sharma',
        'email': 'Priya@Example.com',
        'country_code': '+91',
        'mobile': '9876543210',
        'password': 'Str0ng#Pass',
        'password_confirmation': 'Str0ng#Pass',
        'band_level': 'band7',
    }
    payload.update(overrides)
    return payload


def test_register_login_user_and_logout():
    r = client.post('/auth/register', json=_register_payload())
    assert r.status_code == 201
    body = r.json()
    assert body['token_type'] == 'bearer'
    assert body['user']['email'] == 'priya@example.com'
    assert body['user']['role'] == 'student'
    assert 'password_hash' not in body['user']
    assert body['user']['band_level_display'] == 'Band 7'

    r = client.post('/auth/login', json={'email': 'priya@example.com', 'password': 'Str0ng#Pass'})
    assert r.status_code == 200
    token = r.json()['access_token']
    assert r.json()['user']['last_login_at'] is not None
    headers = {'Authorization': f'Bearer {token}'}

    me = client.get('/auth/user', headers=headers)
    assert me.status_code == 200
    assert me.json()['user']['name'] == 'Priya Sharma'

    out = client.post('/auth/logout', headers=headers)
    assert out.status_code == 200
    again = client.get('/auth/user', headers=headers)
    assert again.status_code == 401
    assert again.json()['detail'] == 'token revoked'


def test_register_validation_errors():
    client.post('/auth/register', json=_register_payload())
    dup = client.post('/auth/register', json=_register_payload(mobile='9123456780'))
    assert dup.status_code == 400
    assert 'email' in dup.json()['detail']

    bad_mobile = client.post('/auth/register', json=_register_payload(email='a@example.com', mobile='1234567890'))
    assert bad_mobile.status_code == 400

    weak = client.post('/auth/register', json=_register_payload(email='b@example.com', mobile='9000000001',
                                                                password='weakpass1', password_confirmation='weakpass1'))
    assert weak.status_code == 400

    mismatch = client.post('/auth/register', json=_register_payload(email='c@example.com', mobile='9000000002',
                                                                    password_confirmation='Other#Pass1'))
    assert mismatch.status_code == 400


def test_register_as_admin_is_refused():
    r = client.post('/auth/register', json=_register_payload(role='admin'))
    assert r.status_code == 403


def test_login_failures(make_user):
    user, _ = make_user(email='inactive@example.com', is_active=False)
    r = client.post('/auth/login', json={'email': 'inactive@example.com', 'password': 'Secret#123'})
    assert r.status_code == 403
    r = client.post('/auth/login', json={'email': 'nobody@example.com', 'password': 'Secret#123'})
    assert r.status_code == 401


def test_login_rate_limit_returns_retry_after():
    for _ in range(settings.LOGIN_RATE_LIMIT_PER_MIN):
        r = client.post('/auth/login', json={'email': 'x@example.com', 'password': 'nope'})
        assert r.status_code == 401
    r = client.post('/auth/login', json={'email': 'x@example.com', 'password': 'nope'})
    assert r.status_code == 429
    assert int(r.headers['Retry-After']) >= 1


def test_token_errors(student):
    r = client.get('/auth/user')
    assert r.status_code == 401
    r = client.get('/auth/user', headers={'Authorization': 'Bearer not-a-token'})
    assert r.status_code == 401
    assert r.json()['detail'] == 'invalid token'
    expired = jwt.encode(
        {'user_id': student[0].id, 'exp': int((datetime.now(timezone.utc) - timedelta(hours=1)).timestamp())},
        settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM,
    )
    r = client.get('/auth/user', headers={'Authorization': f'Bearer {expired}'})
    assert r.status_code == 401
    assert r.json()['detail'] == 'token expired'


def test_check_availability_and_band_levels(student):
    taken = client.post('/auth/check-availability', json={'field': 'email', 'value': student[0].email})
    assert taken.json() == {'available': False}
    free = client.post('/auth/check-availability', json={'field': 'mobile', 'value': '9999999999'})
    assert free.json() == {'available': True}

    bands = client.get('/band-levels').json()['band_levels']
    assert [b['value'] for b in bands] == ['band6', 'band7', 'band8', 'band9']
    assert bands[3]['description'].startswith('Expert User')


def test_role_guards(student, admin):
    assert client.get('/admin/students', headers=student[1]).status_code == 403
    assert client.get('/student/reading', headers=admin[1]).status_code == 403


def test_request_id_header_is_echoed():
    r = client.get('/health', headers={'X-Request-ID': 'abc123'})
    assert r.status_code == 200
    assert r.headers['X-Request-ID'] == 'abc123'
