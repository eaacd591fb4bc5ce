import json

from fastapi.testclient import TestClient

from app.config import settings
from app.main import app

client = TestClient(app)

READING = {
    'title': 'Coral Reefs',
    'content': 'Coral reefs cover less than one percent of the ocean floor.',
    'difficulty_level': 'advanced',
    'band_level': 'band8',
    'time_limit': 20,
    'questions': [
        {'question_text': 'What share of the ocean floor do reefs cover?', 'question_type': 'short_answer',
         'correct_answer': 'less than one percent'},
        {'question_text': 'Reefs are found in every ocean.', 'question_type': 'true_false_not_given',
         'correct_answer': 'Not Given'},
    ],
}


def test_reading_passage_crud(admin):
    headers = admin[1]
    r = client.post('/admin/reading-passages', json=READING, headers=headers)
    assert r.status_code == 201
    passage = r.json()['data']
    assert passage['question_count'] == 2
    assert passage['questions'][0]['correct_answer'] == 'less than one percent'

    missing_options = dict(READING, questions=[{'question_text': 'Pick one', 'question_type': 'multiple_choice',
                                               'correct_answer': 'A'}])
    assert client.post('/admin/reading-passages', json=missing_options, headers=headers).status_code == 400
    assert client.post('/admin/reading-passages', json=dict(READING, time_limit=500),
                       headers=headers).status_code == 422

    keep = passage['questions'][0]
    updated = dict(READING, title='Coral Reefs (revised)', questions=[
        {**keep, 'question_type': 'short_answer', 'correct_answer': 'under 1%|less than one percent'},
        {'question_text': 'Name one threat to reefs.', 'question_type': 'fill_blank', 'correct_answer': 'warming'},
    ])
    r = client.put(f"/admin/reading-passages/{passage['id']}", json=updated, headers=headers)
    assert r.status_code == 200
    questions = r.json()['data']['questions']
    assert len(questions) == 2
    assert questions[0]['id'] == keep['id']
    assert 'Reefs are found in every ocean.' not in [q['question_text'] for q in questions]

    listing = client.get('/admin/reading-passages', params={'band_level': 'band8'}, headers=headers).json()
    assert listing['total'] == 1
    assert listing['data'][0]['title'] == 'Coral Reefs (revised)'

    assert client.delete(f"/admin/reading-passages/{passage['id']}", headers=headers).status_code == 200
    assert client.get(f"/admin/reading-passages/{passage['id']}", headers=headers).status_code == 404


def test_listening_exercise_with_audio_upload(admin):
    headers = admin[1]
    questions = json.dumps([
        {'question_text': 'Name of the hotel:', 'question_type': 'form_completion', 'correct_answer': 'Grand'},
    ])
    form = {'title': 'Hotel booking', 'duration': '240', 'difficulty_level': 'beginner', 'band_level': 'band6',
            'questions': questions, 'transcript': 'Welcome to the Grand hotel.'}

    no_audio = client.post('/admin/listening-exercises', data=form, headers=headers)
    assert no_audio.status_code == 400

    bad_ext = client.post('/admin/listening-exercises', data=form, headers=headers,
                          files={'audio_file': ('clip.exe', b'MZ', 'application/octet-stream')})
    assert bad_ext.status_code == 400

    r = client.post('/admin/listening-exercises', data=form, headers=headers,
                    files={'audio_file': ('clip.mp3', b'ID3' + b'\x00' * 64, 'audio/mpeg')})
    assert r.status_code == 201
    exercise = r.json()['data']
    assert exercise['audio_file_path'].startswith('listening/audio/')
    assert (settings.STORAGE_ROOT / exercise['audio_file_path']).is_file()
    assert exercise['audio_url'] == f"/storage/{exercise['audio_file_path']}"

    bad_json = client.put(f"/admin/listening-exercises/{exercise['id']}", data=dict(form, questions='not json'),
                          headers=headers)
    assert bad_json.status_code == 422

    too_long = client.put(f"/admin/listening-exercises/{exercise['id']}", data=dict(form, duration='4000'),
                          headers=headers)
    assert too_long.status_code == 400

    r = client.put(f"/admin/listening-exercises/{exercise['id']}", data=dict(form, title='Hotel booking 2'),
                   headers=headers)
    assert r.status_code == 200
    assert r.json()['data']['audio_file_path'] == exercise['audio_file_path']

    assert client.delete(f"/admin/listening-exercises/{exercise['id']}", headers=headers).status_code == 200
    assert not (settings.STORAGE_ROOT / exercise['audio_file_path']).exists()


def test_writing_and_speaking_crud(admin):
    headers = admin[1]
    task = {'title': 'Charts', 'task_type': 'task1', 'prompt': 'Summarise the chart.', 'time_limit': 20,
            'word_limit': 150, 'band_level': 'band6'}
    r = client.post('/admin/writing-tasks', json=task, headers=headers)
    assert r.status_code == 201
    task_id = r.json()['data']['id']
    assert client.post('/admin/writing-tasks', json=dict(task, word_limit=10), headers=headers).status_code == 422
    r = client.put(f'/admin/writing-tasks/{task_id}', json=dict(task, word_limit=180), headers=headers)
    assert r.json()['data']['word_limit'] == 180

    prompt = {'title': 'Hometown', 'prompt_text': 'Talk about your hometown.', 'preparation_time': 60,
              'response_time': 120, 'difficulty_level': 'beginner', 'band_level': 'band6'}
    r = client.post('/admin/speaking-prompts', json=prompt, headers=headers)
    assert r.status_code == 201
    prompt_id = r.json()['data']['id']
    assert client.get('/admin/speaking-prompts', headers=headers).json()['total'] == 1
    assert client.delete(f'/admin/speaking-prompts/{prompt_id}', headers=headers).status_code == 200
    assert client.delete(f'/admin/speaking-prompts/{prompt_id}', headers=headers).status_code == 404
