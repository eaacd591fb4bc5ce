import os
import shutil
import tempfile
from pathlib import Path

import pytest

# Point the app at a throwaway database and storage root before it is imported.
_TMP = Path(tempfile.mkdtemp(prefix="ielts-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["STORAGE_ROOT"] = str(_TMP / "storage")
os.environ["LOGIN_RATE_LIMIT_PER_MIN"] = "5"
os.environ["OPENAI_API_KEY"] = ""
os.environ["FCM_SERVER_KEY"] = "test-fcm-key"
os.environ["VOCAB_RETRY_ATTEMPTS"] = "1"

from sqlmodel import Session, SQLModel  # noqa: E402

from app import database, models, question_bank  # noqa: E402
from app.config import settings  # noqa: E402
from app.main import app  # noqa: E402
from app.routers import auth as auth_router  # noqa: E402
from app.services import PWD_CTX, create_access_token  # noqa: E402

PASSWORD = "Secret#123"


@pytest.fixture(autouse=True)
def fresh_state():
    """Recreate tables, empty storage and reset in-process state for every test."""
    SQLModel.metadata.drop_all(database.engine)
    SQLModel.metadata.create_all(database.engine)
    shutil.rmtree(settings.STORAGE_ROOT, ignore_errors=True)
    settings.STORAGE_ROOT.mkdir(parents=True, exist_ok=True)
    auth_router.login_limiter.reset()
    question_bank.provider_status.clear()
    app.dependency_overrides.clear()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def session():
    with Session(database.engine) as s:
        yield s


@pytest.fixture
def make_user(session):
    """Insert a user directly and return `(user, auth_headers)`."""
    counter = {'n': 0}

    def _make(role='student', band_level='band6', **fields):
        counter['n'] += 1
        fields.setdefault('name', f'{role.title()} {counter["n"]}')
        fields.setdefault('email', f'{role}{counter["n"]}@example.com')
        user = models.User(role=role, band_level=band_level if role == 'student' else None,
                           password_hash=PWD_CTX.hash(PASSWORD), **fields)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user, {'Authorization': f'Bearer {create_access_token(user)}'}

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(role='admin')


@pytest.fixture
def student(make_user):
    return make_user(role='student', band_level='band6')


@pytest.fixture
def reading_passage(session, admin):
    passage = models.ReadingPassage(
        title='The History of Tea',
        content='Tea was first cultivated in China. It later spread to Japan and Europe.',
        difficulty_level='intermediate',
        band_level='band6',
        time_limit=20,
        created_by=admin[0].id,
    )
    passage.questions = [
        models.Question(question_text='Where was tea first cultivated?', question_type='short_answer',
                        correct_answer='China', points=1),
        models.Question(question_text='Tea reached Europe before Japan.', question_type='true_false_not_given',
                        correct_answer='False', points=1),
        models.Question(question_text='Which drink is the passage about?', question_type='multiple_choice',
                        correct_answer='Tea', options=['Coffee', 'Tea', 'Milk'], points=2),
    ]
    session.add(passage)
    session.commit()
    session.refresh(passage)
    return passage


@pytest.fixture
def listening_exercise(session, admin):
    exercise = models.ListeningExercise(
        title='Booking a Hotel Room',
        audio_file_path='listening/audio/sample.mp3',
        transcript='I would like to book a double room for three nights.',
        duration=180,
        difficulty_level='beginner',
        band_level='band6',
        created_by=admin[0].id,
    )
    exercise.questions = [
        models.ListeningQuestion(question_text='Type of room:', question_type='form_completion',
                                 correct_answer='double'),
        models.ListeningQuestion(question_text='Number of nights:', question_type='note_completion',
                                 correct_answer='3|three'),
    ]
    session.add(exercise)
    session.commit()
    session.refresh(exercise)
    return exercise


@pytest.fixture
def writing_task(session, admin):
    task = models.WritingTask(title='Technology and Education', task_type='task2',
                              prompt='Some people think technology makes students lazy. Discuss.',
                              time_limit=40, word_limit=250, band_level='band6', created_by=admin[0].id)
    session.add(task)
    session.commit()
    session.refresh(task)
    return task


@pytest.fixture
def speaking_prompt(session, admin):
    prompt = models.SpeakingPrompt(title='Describe a place', prompt_text='Describe a place you like to visit.',
                                   preparation_time=60, response_time=120, difficulty_level='intermediate',
                                   band_level='band6', created_by=admin[0].id)
    session.add(prompt)
    session.commit()
    session.refresh(prompt)
    return prompt
