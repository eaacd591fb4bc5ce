"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
content, attempts, submissions, mock tests, question bank, vocabulary,
notification devices). Repositories return SQLModel objects and perform
commits/refreshes where appropriate.
"""

from datetime import date, datetime
from math import ceil
from typing import Iterable, List, Optional, Type

from sqlalchemy import case, func, or_
from sqlmodel import Session, SQLModel, select

from . import models


def paginate(session: Session, stmt, page: int = 1, per_page: int = 10) -> dict:
    """Run `stmt` for one page and return Laravel-style pagination metadata.

    `data` holds model instances; callers serialise them.
    """
    page = max(1, page)
    per_page = max(1, per_page)
    total = session.exec(select(func.count()).select_from(stmt.order_by(None).subquery())).one()
    items = session.exec(stmt.offset((page - 1) * per_page).limit(per_page)).all()
    return {
        'data': items,
        'current_page': page,
        'per_page': per_page,
        'total': total,
        'last_page': max(1, ceil(total / per_page)),
    }


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def save(self, user: models.User) -> models.User:
        user.updated_at = models.utcnow()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def delete(self, user: models.User) -> None:
        self.session.delete(user)
        self.session.commit()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email.lower())
        return self.session.exec(stmt).first()

    def email_taken(self, email: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(models.User.id).where(models.User.email == email.lower())
        if exclude_id is not None:
            stmt = stmt.where(models.User.id != exclude_id)
        return self.session.exec(stmt).first() is not None

    def mobile_taken(self, mobile: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(models.User.id).where(models.User.mobile == mobile)
        if exclude_id is not None:
            stmt = stmt.where(models.User.id != exclude_id)
        return self.session.exec(stmt).first() is not None

    def students_query(self, band_level: Optional[str] = None, school_name: Optional[str] = None,
                       is_active: Optional[bool] = None, search: Optional[str] = None):
        stmt = select(models.User).where(models.User.role == 'student')
        if band_level:
            stmt = stmt.where(models.User.band_level == band_level)
        if school_name:
            stmt = stmt.where(models.User.school_name == school_name)
        if is_active is not None:
            stmt = stmt.where(models.User.is_active == is_active)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(models.User.name.like(like), models.User.email.like(like)))
        return stmt.order_by(models.User.created_at.desc(), models.User.id.desc())

    def count(self, role: Optional[str] = None, band_level: Optional[str] = None,
              is_active: Optional[bool] = None, since: Optional[datetime] = None,
              unassigned: bool = False) -> int:
        stmt = select(func.count(models.User.id))
        if role:
            stmt = stmt.where(models.User.role == role)
        if band_level:
            stmt = stmt.where(models.User.band_level == band_level)
        if unassigned:
            stmt = stmt.where(models.User.band_level.is_(None))
        if is_active is not None:
            stmt = stmt.where(models.User.is_active == is_active)
        if since is not None:
            stmt = stmt.where(models.User.created_at >= since)
        return self.session.exec(stmt).one()

    def list_by_ids(self, ids: Iterable[int]) -> List[models.User]:
        ids = list(ids)
        if not ids:
            return []
        return self.session.exec(select(models.User).where(models.User.id.in_(ids))).all()


class TokenRepository:
    """Revoked JWT ids."""
    def __init__(self, session: Session):
        self.session = session

    def revoke(self, jti: str, user_id: int, expires_at: datetime) -> None:
        if self.is_revoked(jti):
            return
        self.session.add(models.RevokedToken(jti=jti, user_id=user_id, expires_at=expires_at))
        self.session.commit()

    def is_revoked(self, jti: str) -> bool:
        stmt = select(models.RevokedToken.id).where(models.RevokedToken.jti == jti)
        return self.session.exec(stmt).first() is not None


class ContentRepository:
    """Generic persistence for practice content tables."""
    def __init__(self, session: Session, model: Type[SQLModel]):
        self.session = session
        self.model = model

    def get(self, content_id: int):
        return self.session.get(self.model, content_id)

    def save(self, item):
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def delete(self, item) -> None:
        self.session.delete(item)
        self.session.commit()

    def query(self, band_level: Optional[str] = None, **filters):
        """Newest-first select with optional equality filters."""
        stmt = select(self.model)
        if band_level:
            stmt = stmt.where(self.model.band_level == band_level)
        for field, value in filters.items():
            if value is not None:
                stmt = stmt.where(getattr(self.model, field) == value)
        return stmt.order_by(self.model.created_at.desc(), self.model.id.desc())

    def list(self, band_level: Optional[str] = None, **filters) -> list:
        return self.session.exec(self.query(band_level, **filters)).all()

    def count(self, since: Optional[datetime] = None) -> int:
        stmt = select(func.count(self.model.id))
        if since is not None:
            stmt = stmt.where(self.model.created_at >= since)
        return self.session.exec(stmt).one()

    def exists(self, content_id: int) -> bool:
        return self.get(content_id) is not None


class QuestionRepository:
    """Reading questions and the generated question bank."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, question_id: int) -> Optional[models.Question]:
        """Fetch a question by id."""
        return self.session.get(models.Question, question_id)

    def save(self, question: models.Question) -> models.Question:
        self.session.add(question)
        self.session.commit()
        self.session.refresh(question)
        return question

    def used_question_ids(self, user_id: int, module_type: str, level: int) -> List[int]:
        stmt = (
            select(models.QuestionUsage.question_id)
            .join(models.Question, models.Question.id == models.QuestionUsage.question_id)
            .where(
                models.QuestionUsage.user_id == user_id,
                models.Question.module_type == module_type,
                models.Question.ielts_band_level == level,
            )
        )
        return list(set(self.session.exec(stmt).all()))

    def available(self, module_type: str, question_type: str, level: int, exclude_ids: List[int],
                  limit: int) -> List[models.Question]:
        """Random bank questions of the given kind the user has not seen yet."""
        stmt = select(models.Question).where(
            models.Question.module_type == module_type,
            models.Question.question_type == question_type,
            models.Question.ielts_band_level == level,
            models.Question.is_retired == False,  # noqa: E712
        )
        if exclude_ids:
            stmt = stmt.where(models.Question.id.not_in(exclude_ids))
        return self.session.exec(stmt.order_by(func.random()).limit(limit)).all()

    def record_usage(self, questions: List[models.Question], user_id: int,
                     mock_test_attempt_id: Optional[int]) -> None:
        now = models.utcnow()
        for q in questions:
            self.session.add(models.QuestionUsage(
                question_id=q.id, user_id=user_id, mock_test_attempt_id=mock_test_attempt_id, used_at=now,
            ))
            q.usage_count = (q.usage_count or 0) + 1
            q.last_used_at = now
            self.session.add(q)
        self.session.commit()

    def count_ai_generated(self) -> int:
        stmt = select(func.count(models.Question.id)).where(models.Question.is_ai_generated == True)  # noqa: E712
        return self.session.exec(stmt).one()

    def usage_for_user(self, user_id: int) -> List[tuple]:
        """`(module_type, ielts_band_level, count, last_used)` rows for questions served to a user."""
        stmt = (
            select(models.Question.module_type, models.Question.ielts_band_level,
                   func.count(models.QuestionUsage.id), func.max(models.QuestionUsage.used_at))
            .join(models.Question, models.Question.id == models.QuestionUsage.question_id)
            .where(models.QuestionUsage.user_id == user_id)
            .group_by(models.Question.module_type, models.Question.ielts_band_level)
        )
        return self.session.exec(stmt).all()

    def bank_stats(self) -> List[tuple]:
        """`(module_type, ielts_band_level, total, active)` for leveled bank questions."""
        active = func.sum(case((models.Question.is_retired == False, 1), else_=0))  # noqa: E712
        stmt = (
            select(models.Question.module_type, models.Question.ielts_band_level,
                   func.count(models.Question.id), active)
            .where(models.Question.ielts_band_level.is_not(None))
            .group_by(models.Question.module_type, models.Question.ielts_band_level)
        )
        return self.session.exec(stmt).all()


class AttemptRepository:
    """Practice attempts and their evaluated answers."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, attempt: models.Attempt) -> models.Attempt:
        self.session.add(attempt)
        self.session.commit()
        self.session.refresh(attempt)
        return attempt

    def get(self, attempt_id: int) -> Optional[models.Attempt]:
        return self.session.get(models.Attempt, attempt_id)

    def complete(self, attempt: models.Attempt, answers: List[models.UserAnswer]) -> models.Attempt:
        """Store evaluated answers and the completed attempt in one commit."""
        for a in answers:
            a.attempt_id = attempt.id
            self.session.add(a)
        self.session.add(attempt)
        self.session.commit()
        self.session.refresh(attempt)
        return attempt

    def answers_for(self, attempt_id: int) -> List[models.UserAnswer]:
        stmt = select(models.UserAnswer).where(models.UserAnswer.attempt_id == attempt_id).order_by(models.UserAnswer.id)
        return self.session.exec(stmt).all()

    def completed_query(self, user_id: Optional[int] = None, module_type: Optional[str] = None,
                        since: Optional[datetime] = None):
        stmt = select(models.Attempt).where(models.Attempt.completed_at.is_not(None))
        if user_id is not None:
            stmt = stmt.where(models.Attempt.user_id == user_id)
        if module_type:
            stmt = stmt.where(models.Attempt.module_type == module_type)
        if since is not None:
            stmt = stmt.where(models.Attempt.completed_at >= since)
        return stmt.order_by(models.Attempt.completed_at.desc(), models.Attempt.id.desc())

    def completed(self, user_id: Optional[int] = None, module_type: Optional[str] = None,
                  since: Optional[datetime] = None) -> List[models.Attempt]:
        return self.session.exec(self.completed_query(user_id, module_type, since)).all()

    def all_started(self, since: Optional[datetime] = None) -> List[models.Attempt]:
        stmt = select(models.Attempt)
        if since is not None:
            stmt = stmt.where(models.Attempt.created_at >= since)
        return self.session.exec(stmt).all()

    def content_stats(self, user_id: int, module_type: str, content_id: int) -> dict:
        """Attempt count and best percentage for one piece of content."""
        attempts = self.session.exec(
            select(models.Attempt).where(
                models.Attempt.user_id == user_id,
                models.Attempt.module_type == module_type,
                models.Attempt.content_id == content_id,
                models.Attempt.completed_at.is_not(None),
            )
        ).all()
        best = max((a.percentage for a in attempts), default=None)
        return {'user_attempts_count': len(attempts), 'best_score': best}


class SubmissionRepository:
    """Writing and speaking submissions."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, submission: models.Submission) -> models.Submission:
        self.session.add(submission)
        self.session.commit()
        self.session.refresh(submission)
        return submission

    def get(self, submission_id: int) -> Optional[models.Submission]:
        return self.session.get(models.Submission, submission_id)

    def query(self, user_id: Optional[int] = None, submission_type: Optional[str] = None,
              task_id: Optional[int] = None, since: Optional[datetime] = None):
        stmt = select(models.Submission)
        if user_id is not None:
            stmt = stmt.where(models.Submission.user_id == user_id)
        if submission_type:
            stmt = stmt.where(models.Submission.submission_type == submission_type)
        if task_id is not None:
            stmt = stmt.where(models.Submission.task_id == task_id)
        if since is not None:
            stmt = stmt.where(models.Submission.submitted_at >= since)
        return stmt.order_by(models.Submission.submitted_at.desc(), models.Submission.id.desc())

    def list(self, **kwargs) -> List[models.Submission]:
        return self.session.exec(self.query(**kwargs)).all()

    def count(self, since: Optional[datetime] = None) -> int:
        stmt = select(func.count(models.Submission.id))
        if since is not None:
            stmt = stmt.where(models.Submission.submitted_at >= since)
        return self.session.exec(stmt).one()


class MockTestRepository:
    """Mock tests, their sections and attempts."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, mock_test_id: int) -> Optional[models.MockTest]:
        return self.session.get(models.MockTest, mock_test_id)

    def save(self, mock_test: models.MockTest, sections: Optional[List[models.MockTestSection]] = None) -> models.MockTest:
        """Persist a mock test; when `sections` is given they replace the existing ones."""
        if sections is not None:
            for old in list(mock_test.sections):
                self.session.delete(old)
            mock_test.sections = sections
        self.session.add(mock_test)
        self.session.commit()
        self.session.refresh(mock_test)
        return mock_test

    def delete(self, mock_test: models.MockTest) -> None:
        self.session.delete(mock_test)
        self.session.commit()

    def query(self, band_level: Optional[str] = None, active_only: bool = False, search: Optional[str] = None):
        stmt = select(models.MockTest)
        if band_level:
            stmt = stmt.where(models.MockTest.band_level == band_level)
        if active_only:
            stmt = stmt.where(models.MockTest.is_active == True)  # noqa: E712
        if search:
            stmt = stmt.where(models.MockTest.title.like(f"%{search}%"))
        return stmt.order_by(models.MockTest.band_level.asc(), models.MockTest.created_at.desc(),
                             models.MockTest.id.desc())

    def list(self, **kwargs) -> List[models.MockTest]:
        return self.session.exec(self.query(**kwargs)).all()

    def save_attempt(self, attempt: models.MockTestAttempt) -> models.MockTestAttempt:
        self.session.add(attempt)
        self.session.commit()
        self.session.refresh(attempt)
        return attempt

    def get_attempt(self, attempt_id: int) -> Optional[models.MockTestAttempt]:
        return self.session.get(models.MockTestAttempt, attempt_id)

    def attempts_for_user(self, user_id: int, mock_test_id: Optional[int] = None,
                          completed: Optional[bool] = None) -> List[models.MockTestAttempt]:
        stmt = select(models.MockTestAttempt).where(models.MockTestAttempt.user_id == user_id)
        if mock_test_id is not None:
            stmt = stmt.where(models.MockTestAttempt.mock_test_id == mock_test_id)
        if completed is True:
            stmt = stmt.where(models.MockTestAttempt.completed_at.is_not(None))
        elif completed is False:
            stmt = stmt.where(models.MockTestAttempt.completed_at.is_(None))
        stmt = stmt.order_by(models.MockTestAttempt.started_at.desc(), models.MockTestAttempt.id.desc())
        return self.session.exec(stmt).all()

    def count_attempts(self, user_id: Optional[int] = None) -> int:
        stmt = select(func.count(models.MockTestAttempt.id))
        if user_id is not None:
            stmt = stmt.where(models.MockTestAttempt.user_id == user_id)
        return self.session.exec(stmt).one()


class GenerationLogRepository:
    """Question generation audit log."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, log: models.QuestionGenerationLog) -> models.QuestionGenerationLog:
        self.session.add(log)
        self.session.commit()
        self.session.refresh(log)
        return log

    def query(self, user_id: int):
        return (
            select(models.QuestionGenerationLog)
            .where(models.QuestionGenerationLog.user_id == user_id)
            .order_by(models.QuestionGenerationLog.generated_at.desc(), models.QuestionGenerationLog.id.desc())
        )

    def totals_for_user(self, user_id: int) -> dict:
        logs = self.session.exec(self.query(user_id)).all()
        return {
            'generation_requests': len(logs),
            'questions_generated': sum(log.questions_generated for log in logs),
        }


class VocabularyRepository:
    """Vocabulary words, daily notifications and user interactions."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, word_id: int) -> Optional[models.VocabularyWord]:
        return self.session.get(models.VocabularyWord, word_id)

    def get_by_word(self, word: str) -> Optional[models.VocabularyWord]:
        stmt = select(models.VocabularyWord).where(func.lower(models.VocabularyWord.word) == word.strip().lower())
        return self.session.exec(stmt).first()

    def save(self, item):
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def delete(self, item) -> None:
        self.session.delete(item)
        self.session.commit()

    def words_query(self, difficulty_level: Optional[str] = None, is_active: Optional[bool] = None,
                    search: Optional[str] = None):
        stmt = select(models.VocabularyWord)
        if difficulty_level:
            stmt = stmt.where(models.VocabularyWord.difficulty_level == difficulty_level)
        if is_active is not None:
            stmt = stmt.where(models.VocabularyWord.is_active == is_active)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(models.VocabularyWord.word.like(like), models.VocabularyWord.meaning.like(like)))
        return stmt.order_by(models.VocabularyWord.priority.desc(), models.VocabularyWord.created_at.desc(),
                             models.VocabularyWord.id.desc())

    def has_notifications(self, word_id: int) -> bool:
        stmt = select(models.DailyVocabularyNotification.id).where(
            models.DailyVocabularyNotification.vocabulary_word_id == word_id
        )
        return self.session.exec(stmt).first() is not None

    def notification_for(self, day: date, status: Optional[str] = None) -> Optional[models.DailyVocabularyNotification]:
        stmt = select(models.DailyVocabularyNotification).where(
            models.DailyVocabularyNotification.notification_date == day
        )
        if status:
            stmt = stmt.where(models.DailyVocabularyNotification.status == status)
        return self.session.exec(stmt.order_by(models.DailyVocabularyNotification.id.desc())).first()

    def recently_sent_word_ids(self, since: date) -> List[int]:
        stmt = select(models.DailyVocabularyNotification.vocabulary_word_id).where(
            models.DailyVocabularyNotification.notification_date >= since,
            models.DailyVocabularyNotification.status == 'sent',
        )
        return list(set(self.session.exec(stmt).all()))

    def candidate_words(self, exclude_ids: List[int]) -> List[models.VocabularyWord]:
        """Active words by priority (desc) then age (oldest first)."""
        stmt = select(models.VocabularyWord).where(models.VocabularyWord.is_active == True)  # noqa: E712
        if exclude_ids:
            stmt = stmt.where(models.VocabularyWord.id.not_in(exclude_ids))
        stmt = stmt.order_by(models.VocabularyWord.priority.desc(), models.VocabularyWord.created_at.asc(),
                             models.VocabularyWord.id.asc())
        return self.session.exec(stmt).all()

    def notifications_query(self, date_from: Optional[date] = None, date_to: Optional[date] = None,
                            status: Optional[str] = None):
        stmt = select(models.DailyVocabularyNotification)
        if date_from:
            stmt = stmt.where(models.DailyVocabularyNotification.notification_date >= date_from)
        if date_to:
            stmt = stmt.where(models.DailyVocabularyNotification.notification_date <= date_to)
        if status:
            stmt = stmt.where(models.DailyVocabularyNotification.status == status)
        return stmt.order_by(models.DailyVocabularyNotification.notification_date.desc(),
                             models.DailyVocabularyNotification.id.desc())

    def find_interaction(self, user_id: int, word_id: int, interaction_type: str):
        stmt = select(models.UserVocabularyInteraction).where(
            models.UserVocabularyInteraction.user_id == user_id,
            models.UserVocabularyInteraction.vocabulary_word_id == word_id,
            models.UserVocabularyInteraction.interaction_type == interaction_type,
        )
        return self.session.exec(stmt).first()

    def upsert_interaction(self, user_id: int, word_id: int, interaction_type: str,
                           notification_id: Optional[int] = None,
                           metadata: Optional[dict] = None) -> models.UserVocabularyInteraction:
        """One row per (user, word, type); repeated events refresh the timestamp."""
        row = self.find_interaction(user_id, word_id, interaction_type)
        if row is None:
            row = models.UserVocabularyInteraction(
                user_id=user_id, vocabulary_word_id=word_id, interaction_type=interaction_type,
            )
        row.interacted_at = models.utcnow()
        if notification_id is not None:
            row.notification_id = notification_id
        if metadata is not None:
            row.interaction_metadata = metadata
        return self.save(row)

    def interactions_query(self, user_id: int, interaction_type: Optional[str] = None,
                           date_from: Optional[datetime] = None, date_to: Optional[datetime] = None):
        stmt = select(models.UserVocabularyInteraction).where(models.UserVocabularyInteraction.user_id == user_id)
        if interaction_type:
            stmt = stmt.where(models.UserVocabularyInteraction.interaction_type == interaction_type)
        if date_from:
            stmt = stmt.where(models.UserVocabularyInteraction.interacted_at >= date_from)
        if date_to:
            stmt = stmt.where(models.UserVocabularyInteraction.interacted_at <= date_to)
        return stmt.order_by(models.UserVocabularyInteraction.interacted_at.desc(),
                             models.UserVocabularyInteraction.id.desc())


class DeviceRepository:
    """Notification devices and per-user preferences."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, item):
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def find(self, user_id: int, device_type: str, device_token: str) -> Optional[models.NotificationDevice]:
        stmt = select(models.NotificationDevice).where(
            models.NotificationDevice.user_id == user_id,
            models.NotificationDevice.device_type == device_type,
            models.NotificationDevice.device_token == device_token,
        )
        return self.session.exec(stmt).first()

    def active_for_user(self, user_id: int) -> List[models.NotificationDevice]:
        stmt = select(models.NotificationDevice).where(
            models.NotificationDevice.user_id == user_id,
            models.NotificationDevice.is_active == True,  # noqa: E712
        )
        return self.session.exec(stmt).all()

    def students_with_active_devices(self) -> List[models.User]:
        stmt = (
            select(models.User)
            .join(models.NotificationDevice, models.NotificationDevice.user_id == models.User.id)
            .where(
                models.User.role == 'student',
                models.User.is_active == True,  # noqa: E712
                models.NotificationDevice.is_active == True,  # noqa: E712
            )
            .distinct()
            .order_by(models.User.id)
        )
        return self.session.exec(stmt).all()

    def preferences(self, user_id: int) -> Optional[models.NotificationPreference]:
        stmt = select(models.NotificationPreference).where(models.NotificationPreference.user_id == user_id)
        return self.session.exec(stmt).first()
