from fastapi.testclient import TestClient

from app import models
from app.main import app

client = TestClient(app)


def test_reading_flow(student, reading_passage):
    headers = student[1]
    index = client.get('/student/reading', headers=headers)
    assert index.status_code == 200
    items = index.json()['data']
    assert [i['id'] for i in items] == [reading_passage.id]
    assert items[0]['user_attempts_count'] == 0

    start = client.post(f'/student/reading/{reading_passage.id}/start', headers=headers)
    assert start.status_code == 200
    body = start.json()
    assert body['time_limit'] == 20 * 60
    assert all('correct_answer' not in q for q in body['passage']['questions'])
    attempt_id = body['attempt_id']

    q1, q2, q3 = reading_passage.questions
    answers = [
        {'question_id': q1.id, 'user_answer': 'china'},
        {'question_id': q2.id, 'user_answer': 'F'},
        {'question_id': q3.id, 'user_answer': 'Coffee'},
    ]
    submit = client.post(f'/student/reading/attempts/{attempt_id}/submit',
                         json={'answers': answers, 'time_spent': 300}, headers=headers)
    assert submit.status_code == 200
    summary = submit.json()['summary']
    assert summary['score'] == 2
    assert summary['max_score'] == 4
    assert summary['correct_answers'] == 2
    assert summary['band_score'] == 6.5  # 2 of 3 questions
    assert submit.json()['attempt']['completed_at'] is not None

    again = client.post(f'/student/reading/attempts/{attempt_id}/submit',
                        json={'answers': answers, 'time_spent': 300}, headers=headers)
    assert again.status_code == 400

    results = client.get(f'/student/reading/attempts/{attempt_id}/results', headers=headers).json()
    assert [a['is_correct'] for a in results['answers']] == [True, True, False]
    assert results['answers'][2]['correct_answer'] == 'Tea'

    history = client.get('/student/reading/history', headers=headers).json()
    assert history['total'] == 1

    items = client.get('/student/reading', headers=headers).json()['data']
    assert items[0]['user_attempts_count'] == 1
    assert items[0]['best_score'] == 50.0


def test_reading_access_rules(make_user, student, reading_passage, session):
    other_band, other_headers = make_user(band_level='band8')
    assert client.post(f'/student/reading/{reading_passage.id}/start', headers=other_headers).status_code == 403
    assert client.get('/student/reading', headers=other_headers).json()['data'] == []

    unassigned, unassigned_headers = make_user(band_level=None)
    assert client.post(f'/student/reading/{reading_passage.id}/start', headers=unassigned_headers).status_code == 200

    attempt_id = client.post(f'/student/reading/{reading_passage.id}/start', headers=student[1]).json()['attempt_id']
    peer, peer_headers = make_user(band_level='band6')
    r = client.post(f'/student/reading/attempts/{attempt_id}/submit', json={'answers': [], 'time_spent': 1},
                    headers=peer_headers)
    assert r.status_code == 403
    assert client.get(f'/student/reading/attempts/{attempt_id}/results', headers=peer_headers).status_code == 403
    assert client.post('/student/reading/9999/start', headers=student[1]).status_code == 404


def test_listening_flow_and_review(student, listening_exercise):
    headers = student[1]
    start = client.post(f'/student/listening/{listening_exercise.id}/start', headers=headers)
    assert start.status_code == 200
    body = start.json()
    assert body['time_limit'] == 180
    assert body['audio_url'] == '/storage/listening/audio/sample.mp3'
    assert 'transcript' not in body['exercise']

    q1, q2 = listening_exercise.questions
    answers = [{'question_id': q1.id, 'user_answer': 'Double'}, {'question_id': q2.id, 'user_answer': 'three'}]
    submit = client.post(f"/student/listening/attempts/{body['attempt_id']}/submit",
                         json={'answers': answers, 'time_spent': 170}, headers=headers)
    assert submit.status_code == 200
    assert submit.json()['summary']['accuracy'] == 100.0
    assert submit.json()['summary']['band_score'] == 9.0

    review = client.get(f"/student/attempts/{body['attempt_id']}/review", headers=headers)
    assert review.status_code == 200
    data = review.json()
    assert data['summary']['questions_correct'] == 2
    assert data['summary']['band_score'] == 9.0
    assert data['improvement_suggestions']['immediate']
    assert data['band_specific_tips']['target_band'] == 9.0

    # reading and listening attempts are separate
    assert client.get(f"/student/reading/attempts/{body['attempt_id']}/results", headers=headers).status_code == 404


def test_review_is_owner_only(make_user, student, listening_exercise):
    attempt_id = client.post(f'/student/listening/{listening_exercise.id}/start',
                             headers=student[1]).json()['attempt_id']
    _, other = make_user()
    assert client.get(f'/student/attempts/{attempt_id}/review', headers=other).status_code == 403
    assert client.get('/student/attempts/9999/review', headers=other).status_code == 404


def test_unanswered_questions_score_zero(session, student, reading_passage):
    attempt_id = client.post(f'/student/reading/{reading_passage.id}/start', headers=student[1]).json()['attempt_id']
    r = client.post(f'/student/reading/attempts/{attempt_id}/submit', json={'answers': [], 'time_spent': 10},
                    headers=student[1])
    assert r.json()['summary']['score'] == 0
    assert r.json()['summary']['band_score'] == 2.5
    attempt = session.get(models.Attempt, attempt_id)
    assert attempt.time_spent == 10
