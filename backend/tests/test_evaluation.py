import os
import time

import pytest

from app.utils import evaluation, feedback, validators
from app.utils.file_storage import FileStorage, FileValidationError, format_bytes
from app.utils.rate_limit import LoginRateLimiter


@pytest.mark.parametrize('user, correct, qtype, expected', [
    ('Beijing', 'beijing', 'short_answer', True),
    ('enviroment', 'environment', 'short_answer', True),
    ('large', 'big', 'short_answer', True),
    ('children', 'child', 'fill_blank', True),
    ('colour', 'color|colour', 'short_answer', True),
    ('b', 'a', 'multiple_choice', False),
    ('NG', 'Not Given', 'true_false_not_given', True),
    ('yes', 'False', 'true_false_not_given', False),
    ('', 'anything', 'short_answer', False),
    (None, 'anything', 'short_answer', False),
])
def test_reading_answer_matching(user, correct, qtype, expected):
    assert evaluation.is_answer_correct(user, correct, qtype, 'reading') is expected


@pytest.mark.parametrize('user, correct, qtype, expected', [
    ('3', 'three', 'form_completion', True),
    ('$50', 'fifty dollars', 'note_completion', True),
    ('centre', 'center', 'map_labeling', True),
    ('B', 'C', 'multiple_choice', False),
    ('libary', 'library', 'short_answer', True),
])
def test_listening_answer_matching(user, correct, qtype, expected):
    assert evaluation.is_answer_correct(user, correct, qtype, 'listening') is expected


def test_band_conversion_tables():
    assert evaluation.band_for_module('reading', 30, 40) == 7.5
    assert evaluation.band_for_module('listening', 30, 40) == 7.0
    assert evaluation.band_for_module('reading', 0, 0) == 0.0
    assert evaluation.mock_test_band(18, 20) == 9.0
    assert evaluation.mock_test_band(1, 20) == 0.5
    assert evaluation.round_to_half(6.25) == 6.5
    assert evaluation.round_to_half(6.2) == 6.0
    assert evaluation.levenshtein('kitten', 'sitting') == 3


def test_explanations_list_alternatives():
    text = evaluation.explain(False, '3|three', 'four')
    assert text == 'Incorrect. The correct answer(s): 3, three. Your answer: four'
    assert evaluation.explain(True, 'x', 'x').startswith('Correct!')


def test_writing_feedback_helpers():
    assert feedback.word_count("It's a well-known fact.") == 4
    assert feedback.writing_band(85) == 8.0
    assert feedback.writing_band(10) == 5.0
    assert feedback.mock_writing_band('') == 0.0
    assert feedback.mock_writing_band('word ' * 60) == 2.0

    result = feedback.practice_writing_feedback('word ' * 125, 250)
    assert result['word_count'] == 125
    assert result['overall_score'] == 61.67
    assert result['scores']['task_achievement'] == 60
    assert set(result['analysis']['feedback']) == {'grammar', 'spelling', 'structure', 'vocabulary'}


def test_speaking_feedback_without_transcript():
    assert feedback.speaking_band_from_recording(0) == 0.0
    assert feedback.speaking_band_from_recording(500) == 2.0
    assert feedback.speaking_band_from_recording(60000) == 5.5
    result = feedback.practice_speaking_feedback(None, 60000)
    assert result['overall_score'] == 61
    assert result['transcription'] is None


def test_writing_tips_fall_back_to_defaults():
    assert feedback.writing_tips('band7')['general']
    tips = feedback.writing_tips('band3')
    assert tips['general'][0].startswith('Practice basic essay structure')
    assert tips['lexical_resource'] == []


def test_validators():
    assert validators.validate_email(' Someone@Example.COM ') == 'someone@example.com'
    with pytest.raises(ValueError):
        validators.validate_email('not-an-email')
    validators.validate_mobile('+91', '9876543210')
    validators.validate_mobile('+999', '1234567')
    with pytest.raises(ValueError):
        validators.validate_mobile('+91', '5123456789')
    with pytest.raises(ValueError):
        validators.validate_mobile('91', '9876543210')
    with pytest.raises(ValueError):
        validators.validate_password('short')
    with pytest.raises(ValueError):
        validators.validate_password('alllowercase1!')
    with pytest.raises(ValueError):
        validators.validate_password('Str0ng#Pass', 'Str0ng#Pas')
    validators.validate_password('simplepass', strong=False)


def test_login_rate_limiter():
    limiter = LoginRateLimiter(2, window_seconds=60)
    assert limiter.hit('k') == (True, 0)
    assert limiter.hit('k') == (True, 0)
    allowed, retry_after = limiter.hit('k')
    assert allowed is False
    assert 1 <= retry_after <= 60
    assert limiter.hit('other')[0] is True
    limiter.clear('k')
    assert limiter.hit('k')[0] is True


def test_file_storage_validation(tmp_path):
    storage = FileStorage(tmp_path)
    with pytest.raises(FileValidationError):
        storage.validate('run.exe', b'MZ', 'audio')
    with pytest.raises(FileValidationError):
        storage.validate('note.txt', b'<?php echo 1;', 'document', 'text/plain')
    with pytest.raises(FileValidationError):
        storage.validate('big.mp3', b'0' * 11, 'audio', 'audio/mpeg', max_size=10)
    with pytest.raises(FileValidationError):
        storage.validate('photo.png', b'\x89PNG', 'image', 'text/html')
    with pytest.raises(FileValidationError):
        storage.resolve('../outside.txt')
    storage.validate('photo.png', b'\x89PNG', 'image', 'image/png')


def test_file_storage_lifecycle(tmp_path):
    storage = FileStorage(tmp_path)
    stored = storage.upload('photo.png', b'\x89PNG' + b'\x00' * 10, 'image', directory='covers',
                            content_type='image/png')
    assert stored['path'].startswith('uploads/image/covers/')
    assert stored['url'] == f"/storage/{stored['path']}"
    assert storage.info(stored['path'])['size'] == 14

    stats = storage.storage_stats()
    assert stats['file_count'] == 1
    assert stats['type_stats']['image']['count'] == 1

    old = storage.upload('old.txt', b'hello', 'document', content_type='text/plain')
    long_ago = time.time() - 40 * 86400
    os.utime(tmp_path / old['path'], (long_ago, long_ago))
    assert storage.cleanup(30) == [old['path']]
    assert storage.exists(stored['path'])

    assert storage.delete_multiple([stored['path'], 'uploads/missing.png']) == {
        stored['path']: True, 'uploads/missing.png': False,
    }
    assert storage.info(stored['path']) is None
    assert format_bytes(1536) == '1.5 KB'
