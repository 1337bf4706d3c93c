import pytest
from rest_framework.test import APIClient

from hms.models import AuditLog
from hms.tests.factories import PASSWORD, make_patient, make_user

pytestmark = pytest.mark.django_db


def login(client, **body):
    return client.post('/api/v1/auth/login', body, format='json')


def test_login_by_username_returns_token_and_jwt():
    client = APIClient()
    make_user('doctor', username='house')
    r = login(client, username='house', password=PASSWORD)
    assert r.status_code == 200
    data = r.data['data']
    assert data['token'] and data['access'] and data['refresh']
    assert data['user']['role'] == 'doctor'
    assert AuditLog.objects.filter(action='LOGIN', success=True).exists()


def test_login_by_email():
    client = APIClient()
    make_user('nurse', username='n1', email='nurse@example.test')
    r = login(client, email='NURSE@example.test', password=PASSWORD)
    assert r.status_code == 200
    assert r.data['data']['user']['username'] == 'n1'


def test_login_ignores_role_in_body():
    client = APIClient()
    u = make_user('patient', username='p1')
    r = login(client, username='p1', password=PASSWORD, role='super')
    assert r.status_code == 200
    u.refresh_from_db()
    assert u.role == 'patient'
    assert r.data['data']['user']['role'] == 'patient'


def test_bad_password_is_rejected_and_audited():
    client = APIClient()
    make_user('doctor', username='house')
    r = login(client, username='house', password='nope')
    assert r.status_code == 401
    assert r.data['ok'] is False
    assert r.data['error']['code'] == 'authentication_failed'
    assert AuditLog.objects.filter(action='LOGIN_FAILED', success=False).exists()


def test_login_requires_username_or_email():
    r = login(APIClient(), password='whatever')
    assert r.status_code == 400


def test_bearer_jwt_and_legacy_token_both_authenticate():
    client = APIClient()
    user = make_user('patient', username='p2')
    make_patient(user=user)
    data = login(client, username='p2', password=PASSWORD).data['data']

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {data['access']}")
    r = client.get('/api/v1/auth/profile')
    assert r.status_code == 200
    assert r.data['data']['mrn']

    client.credentials(HTTP_AUTHORIZATION=f"Token {data['token']}")
    assert client.get('/api/v1/auth/profile').status_code == 200


def test_profile_requires_authentication():
    r = APIClient().get('/api/v1/auth/profile')
    assert r.status_code == 401
    assert r.data['error']['code'] == 'not_authenticated'


def test_refresh_and_logout_blacklists_refresh_token():
    client = APIClient()
    make_user('admin', username='a1')
    data = login(client, username='a1', password=PASSWORD).data['data']

    r = client.post('/api/v1/auth/refresh', {'refresh': data['refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['data']['access']

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {data['access']}")
    r = client.post('/api/v1/auth/logout', {'refresh': data['refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['data']['blacklisted'] == 1

    r = APIClient().post('/api/v1/auth/refresh', {'refresh': data['refresh']}, format='json')
    assert r.status_code == 401


def test_refresh_with_garbage_token():
    r = APIClient().post('/api/v1/auth/refresh', {'refresh': 'not-a-token'}, format='json')
    assert r.status_code == 401
