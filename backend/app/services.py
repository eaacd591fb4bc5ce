"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories,
scoring utilities and file storage. Services are intentionally thin: they
perform validation, execute domain logic and persist aggregates via
repositories. Rejections are raised as the domain errors from
`app.errors` and mapped to HTTP statuses by the routers.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import jwt
from passlib.context import CryptContext
from sqlmodel import Session

from . import models, repositories, schemas
from .config import settings
from .errors import ConflictError, NotFoundError, PermissionDeniedError
from .utils import evaluation, feedback
from .utils.file_storage import FileStorage
from .utils.validators import validate_email, validate_mobile, validate_password

logger = logging.getLogger(__name__)

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

CONTENT_MODELS = models.CONTENT_MODELS

LISTENING_AUDIO_EXTENSIONS = ['mp3', 'wav', 'm4a']
LISTENING_AUDIO_MAX_BYTES = 20 * 1024 * 1024
RECORDING_EXTENSIONS = ['mp3', 'wav', 'm4a', 'webm']
RECORDING_MAX_BYTES = 10 * 1024 * 1024


def get_storage() -> FileStorage:
    return FileStorage(settings.STORAGE_ROOT)


def create_access_token(user: models.User) -> str:
    """Sign a JWT for `user`; `jti` identifies the token for logout."""
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
    payload = {
        "user_id": user.id,
        "email": user.email,
        "role": user.role,
        "jti": uuid.uuid4().hex,
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class AuthService:
    """Registration, login, logout and availability checks."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.token_repo = repositories.TokenRepository(session)

    def register(self, data: schemas.RegisterIn):
        """Create a student account and return `(user, token)`."""
        if data.role != 'student':
            raise PermissionDeniedError("Self-registration can only create student accounts.")
        email = validate_email(data.email)
        if self.user_repo.email_taken(email):
            raise ValueError("The email has already been taken.")
        validate_mobile(data.country_code, data.mobile)
        if self.user_repo.mobile_taken(data.mobile):
            raise ValueError("The mobile number has already been taken.")
        validate_password(data.password, data.password_confirmation)
        user = models.User(
            name=data.name.strip(),
            email=email,
            country_code=data.country_code,
            mobile=data.mobile,
            password_hash=PWD_CTX.hash(data.password),
            role='student',
            band_level=data.band_level,
            school_name=data.school_name,
        )
        user = self.user_repo.create(user)
        logger.info("registered user %s", user.id)
        return user, create_access_token(user)

    def authenticate(self, email: str, password: str):
        """Verify credentials and return `(user, token)`.

        Returns `None` if authentication fails; a deactivated account
        raises `PermissionDeniedError`.
        """
        user = self.user_repo.get_by_email(email.strip())
        if not user or not PWD_CTX.verify(password, user.password_hash):
            return None
        if not user.is_active:
            raise PermissionDeniedError("Your account has been deactivated. Please contact the administrator.")
        user.last_login_at = models.utcnow()
        user = self.user_repo.save(user)
        return user, create_access_token(user)

    def logout(self, payload: dict) -> None:
        jti = payload.get('jti')
        if not jti:
            return
        expires_at = datetime.fromtimestamp(payload.get('exp', 0), timezone.utc).replace(tzinfo=None)
        self.token_repo.revoke(jti, payload['user_id'], expires_at)

    def is_available(self, field: str, value: str) -> bool:
        value = (value or '').strip()
        if field == 'email':
            return not self.user_repo.email_taken(value)
        return not self.user_repo.mobile_taken(value)


class UserAdminService:
    """Admin management of student accounts and band levels."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def _student(self, user_id: int) -> models.User:
        user = self.user_repo.get(user_id)
        if not user or user.role != 'student':
            raise NotFoundError("Student not found")
        return user

    def list_students(self, band_level=None, school_name=None, is_active=None, search=None,
                      page: int = 1, per_page: int = 15) -> dict:
        stmt = self.user_repo.students_query(band_level, school_name, is_active, search)
        return repositories.paginate(self.session, stmt, page, per_page)

    def create_student(self, data: schemas.StudentCreateIn) -> models.User:
        email = validate_email(data.email)
        if self.user_repo.email_taken(email):
            raise ValueError("The email has already been taken.")
        validate_password(data.password, strong=False)
        fields = data.model_dump(exclude={'password', 'email', 'mobile_number'})
        user = models.User(**fields, email=email, mobile=data.mobile_number or None,
                           password_hash=PWD_CTX.hash(data.password), role='student')
        return self.user_repo.create(user)

    def get_student(self, user_id: int) -> models.User:
        return self._student(user_id)

    def update_student(self, user_id: int, data: schemas.StudentUpdateIn) -> models.User:
        user = self._student(user_id)
        email = validate_email(data.email)
        if self.user_repo.email_taken(email, exclude_id=user.id):
            raise ValueError("The email has already been taken.")
        fields = data.model_dump(exclude={'email', 'mobile_number', 'is_active'})
        for key, value in fields.items():
            setattr(user, key, value)
        user.email = email
        user.mobile = data.mobile_number or None
        if data.is_active is not None:
            user.is_active = data.is_active
        return self.user_repo.save(user)

    def update_password(self, user_id: int, data: schemas.PasswordUpdateIn) -> None:
        user = self._student(user_id)
        validate_password(data.password, data.password_confirmation, strong=False)
        user.password_hash = PWD_CTX.hash(data.password)
        self.user_repo.save(user)

    def toggle_status(self, user_id: int) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("User not found")
        if user.role != 'student':
            raise ValueError("Status can only be changed for students")
        user.is_active = not user.is_active
        return self.user_repo.save(user)

    def delete_student(self, user_id: int) -> None:
        self.user_repo.delete(self._student(user_id))

    def student_statistics(self, user_id: int) -> dict:
        user = self._student(user_id)
        attempts = repositories.AttemptRepository(self.session).completed(user_id=user.id)
        submissions = repositories.SubmissionRepository(self.session).list(user_id=user.id)
        mock_attempts = repositories.MockTestRepository(self.session).count_attempts(user.id)
        by_module = {m: sum(1 for a in attempts if a.module_type == m) for m in models.MODULE_TYPES}
        average = round(sum(a.percentage for a in attempts) / len(attempts), 2) if attempts else 0.0
        activity = [a.completed_at for a in attempts] + [s.submitted_at for s in submissions]
        return {
            'student': schemas.user_out(user),
            'total_attempts': len(attempts),
            'attempts_by_module': by_module,
            'average_score': average,
            'total_submissions': len(submissions),
            'mock_test_attempts': mock_attempts,
            'last_activity': max(activity) if activity else None,
        }

    def dashboard_stats(self) -> dict:
        week_ago = models.utcnow() - timedelta(days=7)
        return {
            'total_students': self.user_repo.count(role='student'),
            'active_students': self.user_repo.count(role='student', is_active=True),
            'students_by_band': {b: self.user_repo.count(role='student', band_level=b) for b in models.BAND_LEVELS},
            'recent_registrations': self.user_repo.count(role='student', since=week_ago),
        }

    def bulk_update_band(self, student_ids: List[int], band_level: str) -> int:
        updated = 0
        for user in self.user_repo.list_by_ids(student_ids):
            if user.role != 'student':
                continue
            user.band_level = band_level
            user.updated_at = models.utcnow()
            self.session.add(user)
            updated += 1
        self.session.commit()
        return updated

    def assign_band(self, user_id: int, band_level: str, school_name: Optional[str] = None) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("User not found")
        if user.role != 'student':
            raise ValueError("Band levels can only be assigned to students")
        user.band_level = band_level
        if school_name is not None:
            user.school_name = school_name
        return self.user_repo.save(user)

    def students_by_band(self, band_level: Optional[str] = None, school_name: Optional[str] = None) -> List[models.User]:
        stmt = self.user_repo.students_query(band_level, school_name)
        return self.session.exec(stmt).all()

    def band_stats(self) -> dict:
        return {
            'band_counts': {
                b: self.user_repo.count(role='student', band_level=b, is_active=True) for b in models.BAND_LEVELS
            },
            'unassigned': self.user_repo.count(role='student', unassigned=True),
            'inactive': self.user_repo.count(role='student', is_active=False),
            'total_students': self.user_repo.count(role='student'),
        }


class ContentService:
    """Admin CRUD for reading passages, listening exercises, writing tasks
    and speaking prompts."""
    def __init__(self, session: Session, module: str):
        self.session = session
        self.module = module
        self.model = CONTENT_MODELS[module][0]
        self.repo = repositories.ContentRepository(session, self.model)

    def list(self, page: int = 1, per_page: int = 10, band_level: Optional[str] = None) -> dict:
        return repositories.paginate(self.session, self.repo.query(band_level), page, per_page)

    def get(self, content_id: int):
        item = self.repo.get(content_id)
        if not item:
            raise NotFoundError(f"{self.module.capitalize()} content not found")
        return item

    def delete(self, content_id: int) -> None:
        item = self.get(content_id)
        audio = getattr(item, 'audio_file_path', None)
        self.repo.delete(item)
        if audio:
            get_storage().delete(audio)

    def create(self, data, admin: models.User):
        """Create a writing task or speaking prompt."""
        item = self.model(**data.model_dump(), created_by=admin.id)
        return self.repo.save(item)

    def update(self, content_id: int, data):
        item = self.get(content_id)
        for key, value in data.model_dump().items():
            setattr(item, key, value)
        return self.repo.save(item)

    @staticmethod
    def _check_questions(questions: List[schemas.QuestionIn]) -> None:
        for q in questions:
            if q.question_type == 'multiple_choice' and not q.options:
                raise ValueError(f"Options are required for multiple choice question: {q.question_text}")

    def _sync_questions(self, item, questions: List[schemas.QuestionIn], question_model, extra: dict):
        """Edit listed questions by id and add new ones; unlisted questions
        are orphaned and deleted on flush."""
        existing = {q.id: q for q in item.questions}
        keep = []
        for q in questions:
            fields = q.model_dump(exclude={'id'})
            if question_model is models.ListeningQuestion:
                fields.pop('explanation', None)
            row = existing.get(q.id) if q.id is not None else None
            if row is None:
                row = question_model(**fields, **extra)
            else:
                for key, value in fields.items():
                    setattr(row, key, value)
            keep.append(row)
        item.questions = keep

    def save_reading(self, data: schemas.ReadingPassageIn, admin: models.User,
                     content_id: Optional[int] = None) -> models.ReadingPassage:
        self._check_questions(data.questions)
        if content_id is None:
            passage = models.ReadingPassage(created_by=admin.id, title=data.title, content=data.content)
        else:
            passage = self.get(content_id)
        for key, value in data.model_dump(exclude={'questions'}).items():
            setattr(passage, key, value)
        self._sync_questions(passage, data.questions, models.Question, {'module_type': 'reading'})
        return self.repo.save(passage)

    def save_listening(self, fields: dict, questions: List[schemas.QuestionIn], admin: models.User,
                       audio: Optional[tuple] = None, content_id: Optional[int] = None) -> models.ListeningExercise:
        """Create or update a listening exercise.

        `audio` is `(filename, bytes, content_type)`; it is required on
        create and replaces the stored file on update.
        """
        self._check_questions(questions)
        duration = int(fields.get('duration') or 0)
        if not 1 <= duration <= 3600:
            raise ValueError("The duration must be between 1 and 3600 seconds.")
        if fields.get('difficulty_level') not in models.DIFFICULTY_LEVELS:
            raise ValueError("The selected difficulty level is invalid.")
        if fields.get('band_level') not in models.BAND_LEVELS:
            raise ValueError("The selected band level is invalid.")
        if content_id is None:
            if audio is None:
                raise ValueError("The audio file is required.")
            exercise = models.ListeningExercise(created_by=admin.id, title=fields['title'])
        else:
            exercise = self.get(content_id)
        storage = get_storage()
        old_audio = None
        if audio is not None:
            filename, content, content_type = audio
            storage.validate(filename, content, 'audio', content_type,
                             extensions=LISTENING_AUDIO_EXTENSIONS, max_size=LISTENING_AUDIO_MAX_BYTES)
            old_audio = exercise.audio_file_path
            exercise.audio_file_path = storage.save(
                'listening/audio', storage.generate_filename(filename), content)
        for key in ('title', 'transcript', 'difficulty_level', 'band_level'):
            setattr(exercise, key, fields.get(key))
        exercise.duration = duration
        self._sync_questions(exercise, questions, models.ListeningQuestion, {})
        exercise = self.repo.save(exercise)
        if old_audio:
            storage.delete(old_audio)
        return exercise


def content_summary(item, include_questions: bool = False, include_answers: bool = False) -> dict:
    data = item.model_dump()
    if hasattr(item, 'questions'):
        data['question_count'] = len(item.questions)
        if include_questions:
            data['questions'] = [schemas.question_out(q, include_answers) for q in item.questions]
    if getattr(item, 'audio_file_path', None):
        data['audio_url'] = f"/storage/{item.audio_file_path}"
    return data


class StudentContentMixin:
    """Band-gated access to practice content for one student."""
    module = ''

    def __init__(self, session: Session, user: models.User):
        self.session = session
        self.user = user
        self.model, self.content_type = CONTENT_MODELS[self.module]
        self.content_repo = repositories.ContentRepository(session, self.model)
        self.attempt_repo = repositories.AttemptRepository(session)

    @property
    def band_level(self) -> str:
        return self.user.band_level or 'band6'

    def content(self, content_id: int):
        item = self.content_repo.get(content_id)
        if not item:
            raise NotFoundError(f"{self.module.capitalize()} content not found")
        if not self.user.can_access_band_level(item.band_level):
            raise PermissionDeniedError("This content is not available for your band level")
        return item

    def _owned_attempt(self, attempt_id: int) -> models.Attempt:
        attempt = self.attempt_repo.get(attempt_id)
        if not attempt or attempt.module_type != self.module:
            raise NotFoundError("Attempt not found")
        if attempt.user_id != self.user.id:
            raise PermissionDeniedError("Unauthorized")
        return attempt


class PracticeService(StudentContentMixin):
    """Objective practice (reading and listening): start, submit, review."""

    def __init__(self, session: Session, user: models.User, module: str):
        if module not in ('reading', 'listening'):
            raise ValueError(f"Unsupported practice module: {module}")
        self.module = module
        super().__init__(session, user)

    def index(self, difficulty: Optional[str] = None) -> List[dict]:
        out = []
        for item in self.content_repo.list(self.band_level, difficulty_level=difficulty):
            data = content_summary(item)
            data.pop('transcript', None)
            data.update(self.attempt_repo.content_stats(self.user.id, self.module, item.id))
            out.append(data)
        return out

    def start(self, content_id: int) -> dict:
        item = self.content(content_id)
        attempt = models.Attempt(
            user_id=self.user.id,
            module_type=self.module,
            content_id=item.id,
            content_type=self.content_type,
            score=0,
            max_score=sum(q.points or 1 for q in item.questions),
            time_spent=0,
        )
        attempt = self.attempt_repo.save(attempt)
        data = content_summary(item, include_questions=True)
        result = {'attempt_id': attempt.id}
        if self.module == 'reading':
            result.update({'passage': data, 'time_limit': item.time_limit * 60})
        else:
            data.pop('transcript', None)
            result.update({'exercise': data, 'audio_url': data.get('audio_url'),
                           'duration': item.duration, 'time_limit': item.duration})
        return result

    def submit(self, attempt_id: int, answers: List[schemas.AnswerItem], time_spent: int) -> dict:
        attempt = self._owned_attempt(attempt_id)
        if attempt.completed_at is not None:
            raise ValueError("This attempt has already been completed")
        item = self.content_repo.get(attempt.content_id)
        if not item:
            raise NotFoundError(f"{self.module.capitalize()} content not found")
        submitted = {a.question_id: a.user_answer for a in answers}
        evaluated = evaluation.evaluate_answers(item.questions, submitted, self.module)
        rows = [
            models.UserAnswer(
                question_id=r['question_id'],
                question_type=self.module,
                user_answer=r['user_answer'],
                is_correct=r['is_correct'],
                points_earned=r['points_earned'],
            )
            for r in evaluated['results']
        ]
        summary = evaluated['summary']
        attempt.score = summary['score']
        attempt.max_score = summary['max_score']
        attempt.band_score = summary['band_score']
        attempt.time_spent = time_spent
        attempt.completed_at = models.utcnow()
        attempt.evaluation_details = summary
        attempt = self.attempt_repo.complete(attempt, rows)
        logger.info("attempt %s completed: %s/%s", attempt.id, attempt.score, attempt.max_score)
        return {
            'attempt': schemas.attempt_out(attempt),
            'results': evaluated['results'],
            'summary': summary,
        }

    def history(self, page: int = 1) -> dict:
        stmt = self.attempt_repo.completed_query(self.user.id, self.module)
        return schemas.page_out(repositories.paginate(self.session, stmt, page, 10), schemas.attempt_out)

    def results(self, attempt_id: int) -> dict:
        attempt = self._owned_attempt(attempt_id)
        item = self.content_repo.get(attempt.content_id)
        questions = {q.id: q for q in item.questions} if item else {}
        answers = []
        for row in self.attempt_repo.answers_for(attempt.id):
            q = questions.get(row.question_id)
            answers.append({
                'question_id': row.question_id,
                'question_text': q.question_text if q else None,
                'options': q.options if q else None,
                'user_answer': row.user_answer,
                'correct_answer': q.correct_answer if q else None,
                'is_correct': row.is_correct,
                'points_earned': row.points_earned,
            })
        return {
            'attempt': schemas.attempt_out(attempt),
            'content': content_summary(item) if item else None,
            'answers': answers,
        }


class WritingService(StudentContentMixin):
    """Writing practice with heuristic feedback."""
    module = 'writing'

    def __init__(self, session: Session, user: models.User):
        super().__init__(session, user)
        self.submission_repo = repositories.SubmissionRepository(session)

    def index(self, task_type: Optional[str] = None) -> List[dict]:
        out = []
        for task in self.content_repo.list(self.band_level, task_type=task_type):
            subs = self.submission_repo.list(user_id=self.user.id, submission_type='writing', task_id=task.id)
            data = task.model_dump()
            data['submissions_count'] = len(subs)
            data['latest_submission'] = schemas.submission_out(subs[0]) if subs else None
            data['latest_score'] = subs[0].score if subs else None
            out.append(data)
        return out

    def submit(self, task_id: int, content: str, time_spent: int) -> dict:
        task = self.content(task_id)
        result = feedback.practice_writing_feedback(content, task.word_limit, task.task_type)
        overall = result['overall_score']
        attempt = self.attempt_repo.save(models.Attempt(
            user_id=self.user.id,
            module_type='writing',
            content_id=task.id,
            content_type=self.content_type,
            score=overall,
            max_score=100,
            band_score=feedback.writing_band(overall),
            time_spent=time_spent,
            completed_at=models.utcnow(),
            evaluation_details=result,
        ))
        submission = self.submission_repo.save(models.Submission(
            user_id=self.user.id,
            task_id=task.id,
            submission_type='writing',
            content=content,
            ai_feedback=result,
            score=overall,
            attempt_id=attempt.id,
        ))
        return {
            'submission': schemas.submission_out(submission),
            'attempt': schemas.attempt_out(attempt),
            'feedback': result,
        }

    def history(self, page: int = 1) -> dict:
        stmt = self.submission_repo.query(user_id=self.user.id, submission_type='writing')
        return schemas.page_out(repositories.paginate(self.session, stmt, page, 10), schemas.submission_out)

    def _owned_submission(self, submission_id: int) -> models.Submission:
        submission = self.submission_repo.get(submission_id)
        if not submission or submission.submission_type != self.module:
            raise NotFoundError("Submission not found")
        if submission.user_id != self.user.id:
            raise PermissionDeniedError("Unauthorized")
        return submission

    def results(self, submission_id: int) -> dict:
        submission = self._owned_submission(submission_id)
        task = self.content_repo.get(submission.task_id)
        word_limit = task.word_limit if task else 250
        content = submission.content or ''
        return {
            'submission': schemas.submission_out(submission),
            'task': task.model_dump() if task else None,
            'detailed_feedback': feedback.detailed_writing_feedback(content, word_limit, submission.ai_feedback),
            'improvement_suggestions': feedback.writing_improvement_suggestions(content, word_limit),
            'band_analysis': feedback.band_analysis(submission.ai_feedback),
        }

    def tips(self) -> dict:
        return feedback.writing_tips(self.band_level)


class SpeakingService(WritingService):
    """Speaking practice: recordings stored on disk, deterministic feedback."""
    module = 'speaking'

    def index(self, difficulty: Optional[str] = None) -> List[dict]:
        out = []
        for prompt in self.content_repo.list(self.band_level, difficulty_level=difficulty):
            subs = self.submission_repo.list(user_id=self.user.id, submission_type='speaking', task_id=prompt.id)
            data = prompt.model_dump()
            data['submissions_count'] = len(subs)
            data['latest_score'] = subs[0].score if subs else None
            out.append(data)
        return out

    def submit(self, prompt_id: int, filename: str, audio: bytes, content_type: Optional[str],
               time_spent: int, transcript: Optional[str] = None) -> dict:
        prompt = self.content(prompt_id)
        storage = get_storage()
        storage.validate(filename, audio, 'audio', content_type,
                         extensions=RECORDING_EXTENSIONS, max_size=RECORDING_MAX_BYTES)
        path = storage.save('speaking/recordings', storage.generate_filename(filename), audio)
        try:
            result = feedback.practice_speaking_feedback(transcript, len(audio))
            overall = result['overall_score']
            attempt = self.attempt_repo.save(models.Attempt(
                user_id=self.user.id,
                module_type='speaking',
                content_id=prompt.id,
                content_type=self.content_type,
                score=overall,
                max_score=100,
                band_score=evaluation.round_to_half(overall / 100 * 9),
                time_spent=time_spent,
                completed_at=models.utcnow(),
                evaluation_details=result,
            ))
            submission = self.submission_repo.save(models.Submission(
                user_id=self.user.id,
                task_id=prompt.id,
                submission_type='speaking',
                content=transcript,
                file_path=path,
                ai_feedback=result,
                score=overall,
                attempt_id=attempt.id,
            ))
        except Exception:
            self.session.rollback()
            storage.delete(path)
            logger.exception("speaking submission failed; removed %s", path)
            raise
        return {
            'submission': schemas.submission_out(submission),
            'attempt': schemas.attempt_out(attempt),
            'feedback': result,
        }

    def history(self, page: int = 1) -> dict:
        stmt = self.submission_repo.query(user_id=self.user.id, submission_type='speaking')
        return schemas.page_out(repositories.paginate(self.session, stmt, page, 10), schemas.submission_out)

    def results(self, submission_id: int) -> dict:
        submission = self._owned_submission(submission_id)
        prompt = self.content_repo.get(submission.task_id)
        data = schemas.submission_out(submission)
        if submission.file_path:
            data['audio_url'] = f"/storage/{submission.file_path}"
        return {
            'submission': data,
            'prompt': prompt.model_dump() if prompt else None,
            'feedback': submission.ai_feedback,
        }


def _mock_answer_matches(user_answer: Optional[str], correct_answer: Optional[str]) -> bool:
    """Case-insensitive exact match against any `|`-separated alternative."""
    given = evaluation.normalize(user_answer)
    if not given:
        return False
    return any(given == evaluation.normalize(alt) for alt in evaluation.split_alternatives(correct_answer))


class MockTestService:
    """Mock test administration, sitting and scoring."""
    def __init__(self, session: Session, user: models.User):
        self.session = session
        self.user = user
        self.repo = repositories.MockTestRepository(session)

    def _mock_test(self, mock_test_id: int) -> models.MockTest:
        mock_test = self.repo.get(mock_test_id)
        if not mock_test:
            raise NotFoundError("Mock test not found")
        return mock_test

    def index(self, band_level: Optional[str] = None, all_bands: bool = False,
              search: Optional[str] = None) -> List[dict]:
        if self.user.is_admin:
            tests = self.repo.list(band_level=band_level, search=search)
        elif all_bands:
            tests = [t for t in self.repo.list(active_only=True, search=search) if t.is_available()]
        else:
            tests = [
                t for t in self.repo.list(band_level=self.user.band_level or 'band6', active_only=True, search=search)
                if t.is_available()
            ]
        return [schemas.mock_test_out(t) for t in tests]

    def show(self, mock_test_id: int) -> dict:
        mock_test = self._mock_test(mock_test_id)
        data = schemas.mock_test_out(mock_test)
        include_answers = self.user.is_admin
        for section in data['sections']:
            model = CONTENT_MODELS[section['module_type']][0]
            item = self.session.get(model, section['content_id'])
            section['content'] = content_summary(item, include_questions=True,
                                                 include_answers=include_answers) if item else None
        return data

    def _sections(self, sections: List[schemas.MockTestSectionIn]) -> List[models.MockTestSection]:
        out = []
        for order, s in enumerate(sections, start=1):
            model = CONTENT_MODELS[s.module_type][0]
            if self.session.get(model, s.content_id) is None:
                raise ValueError(f"{s.module_type.capitalize()} content {s.content_id} does not exist")
            out.append(models.MockTestSection(module_type=s.module_type, content_id=s.content_id,
                                              order=order, duration_minutes=s.duration_minutes))
        return out

    def _check_window(self, data: schemas.MockTestIn) -> None:
        if data.available_from and data.available_until and data.available_until < data.available_from:
            raise ValueError("available_until must be after available_from")

    def create(self, data: schemas.MockTestIn) -> dict:
        self._check_window(data)
        sections = self._sections(data.sections)
        mock_test = models.MockTest(**data.model_dump(exclude={'sections'}), created_by=self.user.id)
        return schemas.mock_test_out(self.repo.save(mock_test, sections))

    def update(self, mock_test_id: int, data: schemas.MockTestIn) -> dict:
        self._check_window(data)
        mock_test = self._mock_test(mock_test_id)
        sections = self._sections(data.sections)
        for key, value in data.model_dump(exclude={'sections'}).items():
            setattr(mock_test, key, value)
        return schemas.mock_test_out(self.repo.save(mock_test, sections))

    def delete(self, mock_test_id: int) -> None:
        self.repo.delete(self._mock_test(mock_test_id))

    def available_content(self, module_type: Optional[str] = None) -> dict:
        modules = [module_type] if module_type else list(CONTENT_MODELS)
        out = {}
        for module in modules:
            if module not in CONTENT_MODELS:
                raise ValueError(f"Unknown module type: {module}")
            repo = repositories.ContentRepository(self.session, CONTENT_MODELS[module][0])
            out[module] = [content_summary(item) for item in repo.list()]
        return out

    def start(self, mock_test_id: int) -> models.MockTestAttempt:
        mock_test = self._mock_test(mock_test_id)
        if not self.user.is_admin and not mock_test.is_available():
            raise ConflictError("This mock test is not currently available")
        return self.repo.save_attempt(models.MockTestAttempt(user_id=self.user.id, mock_test_id=mock_test.id))

    def _owned_attempt(self, attempt_id: int) -> models.MockTestAttempt:
        attempt = self.repo.get_attempt(attempt_id)
        if not attempt:
            raise NotFoundError("Mock test attempt not found")
        if attempt.user_id != self.user.id:
            raise PermissionDeniedError("Unauthorized")
        return attempt

    def _grade_objective(self, sections, module: str, answers: dict) -> dict:
        correct = total = 0
        for section in sections:
            if section.module_type != module:
                continue
            model = CONTENT_MODELS[module][0]
            item = self.session.get(model, section.content_id)
            if not item:
                continue
            for q in item.questions:
                total += 1
                if _mock_answer_matches(answers.get(q.id), q.correct_answer):
                    correct += 1
        return {'correct': correct, 'total': total, 'band': evaluation.mock_test_band(correct, total)}

    def submit(self, attempt_id: int, data: schemas.MockTestSubmitIn) -> dict:
        attempt = self._owned_attempt(attempt_id)
        if attempt.completed_at is not None:
            raise ValueError("This mock test attempt has already been submitted")
        mock_test = self._mock_test(attempt.mock_test_id)
        reading = self._grade_objective(mock_test.sections, 'reading', data.reading_answers)
        listening = self._grade_objective(mock_test.sections, 'listening', data.listening_answers)
        writing_band = feedback.mock_writing_band(data.writing_response)
        speaking_band = feedback.speaking_band_from_recording(len(data.audio_recording or ''))
        overall = evaluation.round_to_half((reading['band'] + listening['band'] + writing_band + speaking_band) / 4)
        now = models.utcnow()
        attempt.completed_at = now
        attempt.time_spent = data.time_spent if data.time_spent is not None \
            else int((now - attempt.started_at).total_seconds())
        attempt.reading_score = reading['band']
        attempt.listening_score = listening['band']
        attempt.writing_score = writing_band
        attempt.speaking_score = speaking_band
        attempt.total_score = reading['correct'] + listening['correct']
        attempt.overall_band = overall
        detailed = {
            'reading': reading,
            'listening': listening,
            'writing': {'band': writing_band, 'note': 'Requires manual grading'},
            'speaking': {'band': speaking_band, 'note': 'Requires manual grading'},
        }
        attempt.details = detailed
        attempt = self.repo.save_attempt(attempt)
        logger.info("mock test attempt %s submitted, overall band %s", attempt.id, overall)
        return {'attempt': attempt.model_dump(), 'detailed_scores': detailed}

    def my_attempts(self) -> List[dict]:
        out = []
        for attempt in self.repo.attempts_for_user(self.user.id):
            data = attempt.model_dump()
            mock_test = self.repo.get(attempt.mock_test_id)
            data['mock_test'] = mock_test.model_dump() if mock_test else None
            out.append(data)
        return out

    def results(self, attempt_id: int) -> dict:
        attempt = self._owned_attempt(attempt_id)
        data = attempt.model_dump()
        mock_test = self.repo.get(attempt.mock_test_id)
        data['mock_test'] = schemas.mock_test_out(mock_test) if mock_test else None
        data['user'] = schemas.user_out(self.user)
        return data
