import json
from datetime import timedelta

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import select

from app import models
from app.config import settings
from app.errors import NotFoundError
from app.main import app
from app.routers import vocabulary as vocabulary_router
from app.utils.push import FCM_URL, PushSender
from app.vocabulary import DailyVocabularySender
from scripts import send_daily_vocabulary

client = TestClient(app)


def _word(session, word, priority=50, **fields):
    fields.setdefault('meaning', f'meaning of {word}')
    row = models.VocabularyWord(word=word, priority=priority, **fields)
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def _notification(session, word, status='sent', day=None):
    row = models.DailyVocabularyNotification(vocabulary_word_id=word.id, status=status,
                                             notification_date=day or models.utcnow().date())
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def _device(session, user, device_type='mobile_app', token='tok-1', **fields):
    row = models.NotificationDevice(user_id=user.id, device_type=device_type, device_token=token, **fields)
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def _sender(handler):
    return PushSender('test-fcm-key', 1, transport=httpx.MockTransport(handler))


def test_admin_word_management(session, admin):
    headers = admin[1]
    r = client.post('/admin/vocabulary', json={'word': 'Ubiquitous', 'meaning': 'found everywhere',
                                               'synonyms': ['omnipresent'], 'priority': 80}, headers=headers)
    assert r.status_code == 201
    word = r.json()['word']
    assert word['oxford_url'].endswith('/ubiquitous')
    assert client.post('/admin/vocabulary', json={'word': 'ubiquitous', 'meaning': 'again'},
                       headers=headers).status_code == 400

    phrase = client.post('/admin/vocabulary', json={'word': 'give up', 'meaning': 'stop trying'},
                         headers=headers).json()['word']
    assert phrase['oxford_url'].endswith('/give-up')

    rename = client.put(f"/admin/vocabulary/{word['id']}", json={'word': 'Give Up'}, headers=headers)
    assert rename.status_code == 400
    updated = client.put(f"/admin/vocabulary/{word['id']}", json={'priority': 95, 'difficulty_level': 'advanced'},
                         headers=headers).json()['word']
    assert updated['priority'] == 95
    assert updated['meaning'] == 'found everywhere'

    listing = client.get('/admin/vocabulary', params={'search': 'every'}, headers=headers).json()
    assert [w['word'] for w in listing['data']] == ['Ubiquitous']
    assert client.get('/admin/vocabulary', params={'difficulty_level': 'advanced'},
                      headers=headers).json()['total'] == 1

    # a word that was ever broadcast is only deactivated
    _notification(session, session.get(models.VocabularyWord, word['id']))
    r = client.delete(f"/admin/vocabulary/{word['id']}", headers=headers)
    assert r.json()['message'] == 'Vocabulary word deactivated (has notification history)'
    assert client.get(f"/admin/vocabulary/{word['id']}", headers=headers).json()['word']['is_active'] is False

    r = client.delete(f"/admin/vocabulary/{phrase['id']}", headers=headers)
    assert r.json()['message'] == 'Vocabulary word deleted successfully'
    assert client.get(f"/admin/vocabulary/{phrase['id']}", headers=headers).status_code == 404

    history = client.get('/admin/vocabulary/notifications', params={'status': 'sent'}, headers=headers).json()
    assert history['total'] == 1
    assert history['data'][0]['vocabulary_word']['word'] == 'Ubiquitous'


def test_bulk_import_reports_row_errors(admin):
    _ = client.post('/admin/vocabulary', json={'word': 'meticulous', 'meaning': 'careful'}, headers=admin[1])
    rows = [
        {'word': 'resilient', 'meaning': 'able to recover quickly', 'difficulty_level': 'advanced'},
        {'word': 'Meticulous', 'meaning': 'duplicate'},
        {'word': 'pragmatic'},
    ]
    r = client.post('/admin/vocabulary/bulk-import', json={'words': rows}, headers=admin[1])
    assert r.status_code == 200
    body = r.json()
    assert body['imported_count'] == 1
    assert body['message'] == 'Import completed. 1 words imported.'
    assert body['errors'][0] == "Row 1: Word 'Meticulous' already exists"
    assert body['errors'][1].startswith('Row 2: meaning')


def test_student_daily_word_and_interactions(session, student):
    headers = student[1]
    assert client.get('/student/vocabulary/daily', headers=headers).json() == {
        'message': 'No daily word available today', 'word': None,
    }

    word = _word(session, 'eloquent', meaning='fluent and persuasive')
    _notification(session, word)
    daily = client.get('/student/vocabulary/daily', headers=headers).json()
    assert daily['word']['word'] == 'eloquent'
    assert daily['is_bookmarked'] is False
    assert daily['user_interaction']['interaction_metadata']['source'] == 'daily_word_api'

    assert client.post(f'/student/vocabulary/{word.id}/bookmark', headers=headers).status_code == 200
    shown = client.get(f'/student/vocabulary/{word.id}', headers=headers).json()
    assert shown['is_bookmarked'] is True
    assert {i['interaction_type'] for i in shown['interactions']} == {'viewed', 'bookmarked'}

    r = client.post(f'/student/vocabulary/{word.id}/interactions',
                    json={'interaction_type': 'practiced', 'metadata': {'score': 8}}, headers=headers)
    assert r.json()['interaction']['interaction_metadata']['source'] == 'api'
    assert r.json()['interaction']['interaction_metadata']['score'] == 8

    history = client.get('/student/vocabulary/history', headers=headers).json()
    assert history['total'] == 3
    assert history['data'][0]['vocabulary_word']['word'] == 'eloquent'
    only = client.get('/student/vocabulary/history', params={'interaction_type': 'bookmarked'}, headers=headers)
    assert only.json()['total'] == 1
    tomorrow = (models.utcnow().date() + timedelta(days=1)).isoformat()
    assert client.get('/student/vocabulary/history', params={'date_from': tomorrow},
                      headers=headers).json()['total'] == 0

    assert client.delete(f'/student/vocabulary/{word.id}/bookmark', headers=headers).status_code == 200
    missing = client.delete(f'/student/vocabulary/{word.id}/bookmark', headers=headers)
    assert missing.status_code == 404
    assert missing.json()['detail'] == 'Bookmark not found'

    hidden = _word(session, 'obsolete', is_active=False)
    assert client.get(f'/student/vocabulary/{hidden.id}', headers=headers).status_code == 404
    assert client.post('/student/vocabulary/9999/bookmark', headers=headers).status_code == 404


def test_devices_and_preferences(student):
    headers = student[1]
    no_endpoint = client.post('/student/notifications/devices', json={'device_type': 'web', 'device_token': 'b1'},
                              headers=headers)
    assert no_endpoint.status_code == 400

    device = {'device_type': 'web', 'device_token': 'b1', 'browser_type': 'firefox',
              'subscription_data': {'endpoint': 'https://push.example.com/sub/1', 'keys': {'auth': 'x'}}}
    first = client.post('/student/notifications/devices', json=device, headers=headers)
    assert first.status_code == 201
    again = client.post('/student/notifications/devices', json=dict(device, browser_type='chrome'), headers=headers)
    assert again.json()['device']['id'] == first.json()['device']['id']
    assert again.json()['device']['browser_type'] == 'chrome'

    r = client.post('/student/notifications/devices/unregister', json={'device_type': 'web', 'device_token': 'b1'},
                    headers=headers)
    assert r.status_code == 200
    r = client.post('/student/notifications/devices/unregister', json={'device_type': 'web', 'device_token': 'zz'},
                    headers=headers)
    assert r.status_code == 404

    prefs = client.get('/student/notifications/preferences', headers=headers).json()['preferences']
    assert prefs['daily_vocabulary'] is True
    assert prefs['email_notifications'] is False
    r = client.put('/student/notifications/preferences', json={'daily_vocabulary': False}, headers=headers)
    assert r.json()['preferences']['daily_vocabulary'] is False
    prefs = client.get('/student/notifications/preferences', headers=headers).json()['preferences']
    assert prefs['daily_vocabulary'] is False
    assert prefs['practice_reminders'] is True


def test_admin_test_notification(session, admin):
    word = _word(session, 'candid', meaning='truthful and straightforward')
    _device(session, admin[0], token='admin-phone')
    _device(session, admin[0], device_type='web', token='admin-browser',
            subscription_data={'endpoint': 'https://push.example.com/sub/gone'})
    requests = []

    def handler(request):
        requests.append(request)
        if str(request.url) == FCM_URL:
            return httpx.Response(200, json={'success': 1})
        return httpx.Response(410)

    def override():
        sender = _sender(handler)
        try:
            yield sender
        finally:
            sender.close()

    app.dependency_overrides[vocabulary_router.get_push_sender] = override
    r = client.post(f'/admin/vocabulary/{word.id}/test-notification', headers=admin[1])
    assert r.status_code == 200
    assert r.json() == {'message': 'Test notification sent', 'total': 2, 'successful': 1, 'failed': 1}

    fcm = next(req for req in requests if str(req.url) == FCM_URL)
    assert fcm.headers['Authorization'] == 'key=test-fcm-key'
    body = json.loads(fcm.content)
    assert body['to'] == 'admin-phone'
    assert body['data']['word'] == 'candid'
    web = next(req for req in requests if str(req.url) != FCM_URL)
    assert web.content == b''
    assert web.headers['TTL'] == '86400'

    viewed = session.exec(select(models.UserVocabularyInteraction).where(
        models.UserVocabularyInteraction.user_id == admin[0].id)).all()
    assert [v.interaction_metadata['source'] for v in viewed] == ['daily_notification']

    assert client.post('/admin/vocabulary/9999/test-notification', headers=admin[1]).status_code == 404


def test_daily_sender_flow(session, make_user, monkeypatch):
    sent_to = []

    def handler(request):
        sent_to.append(json.loads(request.content)['to'])
        return httpx.Response(200)

    sender = DailyVocabularySender(session, sender=_sender(handler))
    try:
        assert sender.run()['status'] == 'no_word'

        alpha = _word(session, 'alpha', priority=90)
        beta = _word(session, 'beta', priority=50)
        dry = sender.run(dry_run=True)
        assert dry['status'] == 'dry_run'
        assert dry['word']['word'] == 'alpha'

        failed = sender.run()
        assert failed['status'] == 'failed'
        assert failed['notification']['failure_reason'] == 'No active students found'

        reachable, _ = make_user()
        _device(session, reachable, token='phone-reachable')
        opted_out, _ = make_user()
        _device(session, opted_out, token='phone-opted-out')
        session.add(models.NotificationPreference(user_id=opted_out.id, daily_vocabulary=False))
        inactive, _ = make_user(is_active=False)
        _device(session, inactive, token='phone-inactive')
        session.commit()

        result = sender.run()
        assert result['status'] == 'sent'
        assert result['word']['word'] == 'alpha'
        assert (result['total'], result['successful'], result['failed']) == (1, 1, 0)
        assert result['notification']['total_recipients'] == 1
        assert sent_to == ['phone-reachable']

        interaction = session.exec(select(models.UserVocabularyInteraction).where(
            models.UserVocabularyInteraction.user_id == reachable.id)).one()
        assert interaction.notification_id == result['notification']['id']

        assert sender.run()['status'] == 'skipped'
        # recently sent words are excluded from the rotation
        forced = sender.run(force=True)
        assert forced['word']['id'] == beta.id
        assert sender.run(force=True, word_id=alpha.id)['word']['id'] == alpha.id
        with pytest.raises(NotFoundError):
            sender.run(force=True, word_id=9999)

        monkeypatch.setattr(settings, 'VOCAB_NOTIFICATIONS_ENABLED', False)
        assert sender.run()['status'] == 'disabled'
    finally:
        sender.close()


def test_daily_script_exit_codes(session, capsys):
    assert send_daily_vocabulary.main() == 1
    assert 'No vocabulary word available' in capsys.readouterr().out

    _word(session, 'gamma')
    assert send_daily_vocabulary.main(dry_run=True) == 0
    assert 'DRY RUN - would send: gamma' in capsys.readouterr().out
    assert send_daily_vocabulary.main() == 1
    assert 'No active students found' in capsys.readouterr().out
