from datetime import date, timedelta

from fastapi.testclient import TestClient

from app import models
from app.main import app
from app.progress import improvement_rate, streak_days

client = TestClient(app)


def _attempt(session, user, module, content, score, max_score=100, days_ago=0, time_spent=600):
    attempt = models.Attempt(
        user_id=user.id,
        module_type=module,
        content_id=content.id,
        content_type=models.CONTENT_MODELS[module][1],
        score=score,
        max_score=max_score,
        time_spent=time_spent,
        completed_at=models.utcnow() - timedelta(days=days_ago),
    )
    session.add(attempt)
    session.commit()
    session.refresh(attempt)
    return attempt


def _seed(session, make_user, student, reading_passage, listening_exercise):
    _attempt(session, student[0], 'reading', reading_passage, 90)
    _attempt(session, student[0], 'listening', listening_exercise, 50)
    top, top_headers = make_user()
    _attempt(session, top, 'reading', reading_passage, 4, max_score=4)
    old, _ = make_user()
    _attempt(session, old, 'reading', reading_passage, 20, days_ago=40)
    return top, old


def test_dashboard(session, make_user, student, admin, reading_passage, listening_exercise):
    _seed(session, make_user, student, reading_passage, listening_exercise)
    _attempt(session, admin[0], 'reading', reading_passage, 100)

    r = client.get('/student/dashboard', headers=student[1])
    assert r.status_code == 200
    body = r.json()
    overall = body['overall_stats']
    assert overall['total_attempts'] == 2
    assert overall['average_score'] == 70.0
    assert overall['best_score'] == 90.0
    assert overall['streak_days'] == 1
    assert overall['modules_practiced'] == 2
    assert body['module_breakdown']['listening']['average_score'] == 50.0
    assert body['module_breakdown']['writing']['attempts_count'] == 0
    assert body['quick_stats']['best_module'] == {'name': 'reading', 'score': 90.0}
    assert {a['content_title'] for a in body['recent_activity']} == {reading_passage.title, listening_exercise.title}
    assert body['leaderboard_position'] == 2


def test_achievements_trends_and_chart(session, make_user, student, reading_passage, listening_exercise):
    assert client.get('/student/progress/achievements', headers=student[1]).json()['achievements'] == []
    _seed(session, make_user, student, reading_passage, listening_exercise)

    titles = [a['title'] for a in client.get('/student/progress/achievements', headers=student[1]).json()['achievements']]
    assert titles == ['First Steps', 'Excellence']

    trends = client.get('/student/progress/trends', headers=student[1]).json()['trends']
    assert len(trends) == 1
    assert trends[0]['attempts_count'] == 2
    assert trends[0]['average_score'] == 70.0

    chart = client.get('/student/progress/chart', params={'module': 'listening'}, headers=student[1]).json()['data']
    assert chart[0]['score'] == 50.0
    assert chart[0]['attempts'] == 1

    full = client.get('/student/progress', headers=student[1]).json()
    assert set(full) == {'overall_stats', 'module_breakdown', 'recent_activity', 'performance_trends',
                         'achievements'}


def test_module_progress(session, make_user, student, reading_passage, listening_exercise):
    _seed(session, make_user, student, reading_passage, listening_exercise)
    r = client.get('/student/progress/reading', headers=student[1])
    assert r.status_code == 200
    assert r.json()['attempts']['total'] == 1
    assert r.json()['stats']['best_score'] == 90.0
    assert client.get('/student/progress/geography', headers=student[1]).status_code == 404


def test_leaderboards(session, make_user, student, reading_passage, listening_exercise):
    top, old = _seed(session, make_user, student, reading_passage, listening_exercise)
    headers = student[1]

    board = client.get('/student/leaderboard', headers=headers).json()
    assert [row['user_id'] for row in board['leaderboard']] == [top.id, student[0].id]
    assert board['leaderboard'][0]['rank'] == 1
    assert board['user_position'] == 2

    missing = client.get('/student/leaderboard', params={'type': 'module'}, headers=headers)
    assert missing.status_code == 400

    listening = client.get('/student/leaderboard', params={'type': 'module', 'module': 'listening'},
                           headers=headers).json()
    assert [row['user_id'] for row in listening['leaderboard']] == [student[0].id]
    assert listening['user_position'] == 1

    weekly = client.get('/student/leaderboard', params={'type': 'weekly'}, headers=headers).json()
    assert weekly['leaderboard'][0]['weekly_average_score'] == 100.0

    all_time = client.get('/student/progress/leaderboard', params={'period': 'all'}, headers=headers).json()
    assert [row['id'] for row in all_time['data']] == [top.id, student[0].id, old.id]
    assert all_time['user_rank'] == {'position': 2, 'total': 3, 'score': 70.0}
    assert all_time['has_more'] is False

    assert client.get('/student/progress/leaderboard', params={'period': 'year'}, headers=headers).status_code == 422


def test_streak_and_improvement_helpers():
    today = date(2025, 3, 10)
    assert streak_days([today, today - timedelta(days=1), today - timedelta(days=3)], today) == 2
    assert streak_days([today - timedelta(days=1)], today) == 0
    assert improvement_rate([50, 75]) == 50.0
    assert improvement_rate([0, 10]) == 100
    assert improvement_rate([80]) == 0
