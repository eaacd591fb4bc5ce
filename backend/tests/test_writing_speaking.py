import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.main import app
from app.utils import feedback

client = TestClient(app)

ESSAY = 'Technology helps students learn. ' * 63  # 252 words


def test_writing_submit_and_results(student, writing_task):
    headers = student[1]
    listing = client.get('/student/writing', headers=headers).json()['data']
    assert listing[0]['submissions_count'] == 0
    assert client.get(f'/student/writing/{writing_task.id}', headers=headers).json()['task']['word_limit'] == 250

    short = client.post(f'/student/writing/{writing_task.id}/submit',
                        json={'content': 'Too short.', 'time_spent': 60}, headers=headers)
    assert short.status_code == 422

    r = client.post(f'/student/writing/{writing_task.id}/submit',
                    json={'content': ESSAY, 'time_spent': 1800}, headers=headers)
    assert r.status_code == 201
    body = r.json()
    assert body['feedback']['word_count'] == 252
    assert body['feedback']['overall_score'] == 85.0
    assert body['attempt']['band_score'] == 8.0
    assert body['attempt']['max_score'] == 100
    assert body['attempt']['id'] == body['submission']['attempt_id']
    assert body['attempt']['score'] == 85.0

    submission_id = body['submission']['id']
    results = client.get(f'/student/writing/submissions/{submission_id}/results', headers=headers).json()
    assert results['detailed_feedback']['word_analysis']['meets_requirement'] is True
    assert results['band_analysis']['current_band'] == 8.0
    assert 'Include a conclusion that summarizes your main points' in results['improvement_suggestions']['immediate']

    assert client.get('/student/writing/history', headers=headers).json()['total'] == 1
    listing = client.get('/student/writing', headers=headers).json()['data']
    assert listing[0]['submissions_count'] == 1
    assert listing[0]['latest_score'] == 85.0


def test_writing_access_and_tips(make_user, student, writing_task):
    _, band9 = make_user(band_level='band9')
    assert client.get(f'/student/writing/{writing_task.id}', headers=band9).status_code == 403
    r = client.post(f'/student/writing/{writing_task.id}/submit', json={'content': ESSAY, 'time_spent': 1},
                    headers=student[1])
    submission_id = r.json()['submission']['id']
    _, peer = make_user()
    assert client.get(f'/student/writing/submissions/{submission_id}/results', headers=peer).status_code == 403
    assert client.get('/student/writing/submissions/9999/results', headers=peer).status_code == 404

    tips = client.get('/student/writing/tips', headers=student[1]).json()
    assert set(tips) >= {'general', 'task_achievement', 'coherence_cohesion', 'lexical_resource',
                         'grammatical_accuracy'}
    assert tips['general']


def test_speaking_submit_stores_recording(student, speaking_prompt):
    headers = student[1]
    r = client.post(f'/student/speaking/{speaking_prompt.id}/submit', headers=headers,
                    data={'time_spent': '95'},
                    files={'audio_file': ('answer.webm', b'\x1a\x45\xdf\xa3' + b'\x00' * 2000, 'audio/webm')})
    assert r.status_code == 201
    body = r.json()
    path = body['submission']['file_path']
    assert path.startswith('speaking/recordings/')
    assert (settings.STORAGE_ROOT / path).is_file()
    assert body['feedback']['overall_score'] == 39
    assert body['attempt']['band_score'] == 3.5
    assert body['attempt']['id'] == body['submission']['attempt_id']

    results = client.get(f"/student/speaking/submissions/{body['submission']['id']}/results", headers=headers)
    assert results.json()['submission']['audio_url'] == f'/storage/{path}'
    assert client.get('/student/speaking/history', headers=headers).json()['total'] == 1


def test_speaking_with_transcript_and_bad_upload(student, speaking_prompt):
    headers = student[1]
    transcript = ('I usually visit the park near my house. However, it is quiet and green. '
                  'Furthermore, I enjoy reading there because it relaxes me.')
    r = client.post(f'/student/speaking/{speaking_prompt.id}/submit', headers=headers,
                    data={'time_spent': '60', 'transcript': transcript},
                    files={'audio_file': ('answer.mp3', b'ID3' + b'\x00' * 500, 'audio/mpeg')})
    assert r.status_code == 201
    feedback = r.json()['feedback']
    assert feedback['transcription'] == transcript
    assert set(feedback['feedback']) == {'fluency', 'pronunciation', 'vocabulary', 'coherence'}

    bad = client.post(f'/student/speaking/{speaking_prompt.id}/submit', headers=headers,
                      data={'time_spent': '60'},
                      files={'audio_file': ('answer.ogg', b'OggS' + b'\x00' * 100, 'audio/ogg')})
    assert bad.status_code == 400
    assert not list((settings.STORAGE_ROOT / 'speaking').rglob('*.ogg'))


def test_failed_speaking_submission_removes_recording(monkeypatch, student, speaking_prompt):
    def broken(transcript, size):
        raise RuntimeError('analysis unavailable')

    monkeypatch.setattr(feedback, 'practice_speaking_feedback', broken)
    with pytest.raises(RuntimeError):
        client.post(f'/student/speaking/{speaking_prompt.id}/submit', headers=student[1],
                    data={'time_spent': '30'},
                    files={'audio_file': ('answer.webm', b'\x1a\x45\xdf\xa3' + b'\x00' * 500, 'audio/webm')})
    assert not [p for p in (settings.STORAGE_ROOT / 'speaking').rglob('*') if p.is_file()]
    assert client.get('/student/speaking/history', headers=student[1]).json()['total'] == 0
