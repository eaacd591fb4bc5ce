from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)


def _create_student(headers, **overrides):
    payload = {
        'name': 'Lena Park',
        'email': 'lena@example.com',
        'password': 'simplepass',
        'band_level': 'band7',
        'school_name': 'Riverside High',
        'class_name': '12B',
    }
    payload.update(overrides)
    return client.post('/admin/students', json=payload, headers=headers)


def test_student_crud(admin):
    headers = admin[1]
    r = _create_student(headers)
    assert r.status_code == 201
    student = r.json()['student']
    assert student['band_level'] == 'band7'
    assert student['status'] == 'Active'

    assert _create_student(headers).status_code == 400

    listing = client.get('/admin/students', params={'band_level': 'band7', 'search': 'lena'}, headers=headers)
    assert listing.status_code == 200
    assert listing.json()['total'] == 1
    assert listing.json()['per_page'] == 15

    update = client.put(f"/admin/students/{student['id']}", json={
        'name': 'Lena Park', 'email': 'lena@example.com', 'band_level': 'band8', 'city': 'Perth',
    }, headers=headers)
    assert update.status_code == 200
    assert update.json()['student']['band_level'] == 'band8'
    assert update.json()['student']['city'] == 'Perth'

    pw = client.put(f"/admin/students/{student['id']}/password",
                    json={'password': 'newpassword', 'password_confirmation': 'different'}, headers=headers)
    assert pw.status_code == 400
    pw = client.put(f"/admin/students/{student['id']}/password",
                    json={'password': 'newpassword', 'password_confirmation': 'newpassword'}, headers=headers)
    assert pw.status_code == 200
    login = client.post('/auth/login', json={'email': 'lena@example.com', 'password': 'newpassword'})
    assert login.status_code == 200

    toggled = client.post(f"/admin/students/{student['id']}/toggle-status", headers=headers)
    assert toggled.json()['student']['is_active'] is False

    stats = client.get(f"/admin/students/{student['id']}/statistics", headers=headers)
    assert stats.status_code == 200
    assert stats.json()['total_attempts'] == 0
    assert stats.json()['last_activity'] is None

    assert client.delete(f"/admin/students/{student['id']}", headers=headers).status_code == 200
    assert client.get(f"/admin/students/{student['id']}", headers=headers).status_code == 404


def test_dashboard_stats_and_bulk_band_update(admin, make_user):
    s1, _ = make_user(band_level='band6')
    s2, _ = make_user(band_level='band6')
    make_user(band_level='band9')
    stats = client.get('/admin/students/dashboard-stats', headers=admin[1]).json()
    assert stats['total_students'] == 3
    assert stats['students_by_band']['band6'] == 2
    assert stats['recent_registrations'] == 3

    r = client.post('/admin/students/bulk-update-band',
                    json={'student_ids': [s1.id, s2.id, admin[0].id], 'band_level': 'band8'}, headers=admin[1])
    assert r.status_code == 200
    assert r.json()['updated_count'] == 2


def test_band_level_management(admin, make_user):
    student, _ = make_user(band_level=None)
    headers = admin[1]

    r = client.post('/admin/band-levels/assign', json={'user_id': admin[0].id, 'band_level': 'band7'},
                    headers=headers)
    assert r.status_code == 400
    assert r.json()['detail'] == 'Band levels can only be assigned to students'

    stats = client.get('/admin/band-levels/stats', headers=headers).json()
    assert stats['unassigned'] == 1

    r = client.post('/admin/band-levels/assign',
                    json={'user_id': student.id, 'band_level': 'band7', 'school_name': 'North School'},
                    headers=headers)
    assert r.status_code == 200
    assert r.json()['user']['band_level_display'] == 'Band 7'

    listed = client.get('/admin/band-levels/students', params={'school_name': 'North School'}, headers=headers)
    assert [u['id'] for u in listed.json()['students']] == [student.id]

    assert client.put('/admin/band-levels/users/9999', json={'band_level': 'band6'},
                      headers=headers).status_code == 404
    assert client.post(f'/admin/band-levels/users/{admin[0].id}/toggle-status',
                       headers=headers).status_code == 400

    stats = client.get('/admin/band-levels/stats', headers=headers).json()
    assert stats['band_counts']['band7'] == 1
    assert stats['unassigned'] == 0
    assert stats['total_students'] == 1
