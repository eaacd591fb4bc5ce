"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table and uses relationships where appropriate.

Timestamps are stored as naive UTC datetimes (see `utcnow`) so values
read back from SQLite compare cleanly with freshly created ones.
"""

from typing import Optional, List
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON, UniqueConstraint
from datetime import datetime, date, timezone


BAND_LEVELS = ("band6", "band7", "band8", "band9")
MODULE_TYPES = ("reading", "writing", "listening", "speaking")
DIFFICULTY_LEVELS = ("beginner", "intermediate", "advanced")


def utcnow() -> datetime:
    """Current UTC time without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(SQLModel, table=True):
    """A registered account (student or admin).

    Fields:
    - `email`: unique login identifier
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: `admin` or `student`
    - `band_level`: IELTS tier used to gate which content a student sees
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, nullable=False, unique=True)
    country_code: Optional[str] = None
    mobile: Optional[str] = Field(default=None, index=True, unique=True)
    password_hash: str
    role: str = Field(default="student", index=True)
    band_level: Optional[str] = Field(default=None, index=True)
    school_name: Optional[str] = None
    class_name: Optional[str] = None
    grade_level: Optional[str] = None
    parent_name: Optional[str] = None
    parent_email: Optional[str] = None
    parent_mobile: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    is_active: bool = True
    last_login_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def can_access_band_level(self, level: Optional[str]) -> bool:
        """Admins see everything; students only content of their own band.

        A student without an assigned band is treated as `band6`.
        """
        if self.is_admin:
            return True
        return (self.band_level or "band6") == level


class RevokedToken(SQLModel, table=True):
    """JWT ids invalidated by logout."""
    id: Optional[int] = Field(default=None, primary_key=True)
    jti: str = Field(index=True, unique=True)
    user_id: int = Field(foreign_key='user.id')
    expires_at: datetime
    revoked_at: datetime = Field(default_factory=utcnow)


class ReadingPassage(SQLModel, table=True):
    """A reading text with its question set."""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    content: str
    difficulty_level: str = "intermediate"
    band_level: str = Field(default="band6", index=True)
    time_limit: int = 20
    created_by: Optional[int] = Field(default=None, foreign_key='user.id')
    created_at: datetime = Field(default_factory=utcnow)
    questions: List['Question'] = Relationship(
        back_populates='passage',
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class Question(SQLModel, table=True):
    """A reading question; also the bank for generated mock-test questions.

    Generated questions carry `ielts_band_level`, `is_ai_generated` and
    usage bookkeeping (`usage_count`, `last_used_at`, `is_retired`).
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    passage_id: Optional[int] = Field(default=None, foreign_key='readingpassage.id', index=True)
    question_text: str
    question_type: str = Field(default="multiple_choice", index=True)
    correct_answer: str = ""
    options: Optional[list] = Field(default=None, sa_column=Column(JSON))
    points: int = 1
    explanation: Optional[str] = None
    module_type: str = Field(default="reading", index=True)
    ielts_band_level: Optional[int] = Field(default=None, index=True)
    is_ai_generated: bool = False
    ai_metadata: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    usage_count: int = 0
    last_used_at: Optional[datetime] = None
    is_retired: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    passage: Optional[ReadingPassage] = Relationship(back_populates='questions')


class ListeningExercise(SQLModel, table=True):
    """An audio clip with transcript and questions."""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    audio_file_path: Optional[str] = None
    transcript: Optional[str] = None
    duration: int = 0
    difficulty_level: str = "intermediate"
    band_level: str = Field(default="band6", index=True)
    created_by: Optional[int] = Field(default=None, foreign_key='user.id')
    created_at: datetime = Field(default_factory=utcnow)
    questions: List['ListeningQuestion'] = Relationship(
        back_populates='exercise',
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class ListeningQuestion(SQLModel, table=True):
    """Question attached to a `ListeningExercise`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    exercise_id: int = Field(foreign_key='listeningexercise.id', index=True)
    question_text: str
    question_type: str = "multiple_choice"
    correct_answer: str
    options: Optional[list] = Field(default=None, sa_column=Column(JSON))
    points: int = 1
    exercise: Optional[ListeningExercise] = Relationship(back_populates='questions')


class WritingTask(SQLModel, table=True):
    """Task 1 (report) or Task 2 (essay) writing prompt."""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    task_type: str = "task2"
    prompt: str
    instructions: Optional[str] = None
    time_limit: int = 40
    word_limit: int = 250
    band_level: str = Field(default="band6", index=True)
    created_by: Optional[int] = Field(default=None, foreign_key='user.id')
    created_at: datetime = Field(default_factory=utcnow)


class SpeakingPrompt(SQLModel, table=True):
    """A speaking cue card with preparation and response timings (seconds)."""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    prompt_text: str
    preparation_time: int = 60
    response_time: int = 120
    difficulty_level: str = "intermediate"
    band_level: str = Field(default="band6", index=True)
    created_by: Optional[int] = Field(default=None, foreign_key='user.id')
    created_at: datetime = Field(default_factory=utcnow)


class Attempt(SQLModel, table=True):
    """A scored interaction with one piece of practice content.

    `content_type` names the content table (`reading_passage`,
    `listening_exercise`, `writing_task`, `speaking_prompt`).
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    module_type: str = Field(index=True)
    content_id: int
    content_type: str
    score: Optional[float] = None
    max_score: float = 0
    band_score: Optional[float] = None
    time_spent: Optional[int] = None
    evaluation_details: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    completed_at: Optional[datetime] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    answers: List['UserAnswer'] = Relationship(
        back_populates='attempt',
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )

    @property
    def percentage(self) -> float:
        if not self.max_score:
            return 0.0
        return round((self.score or 0) / self.max_score * 100, 2)


class UserAnswer(SQLModel, table=True):
    """One evaluated answer inside an `Attempt`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    attempt_id: int = Field(foreign_key='attempt.id', index=True)
    question_id: int
    question_type: str = "reading"
    user_answer: Optional[str] = None
    is_correct: bool = False
    points_earned: float = 0
    attempt: Optional[Attempt] = Relationship(back_populates='answers')


class Submission(SQLModel, table=True):
    """A writing essay or speaking recording with its feedback."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    task_id: int
    submission_type: str = Field(index=True)
    content: Optional[str] = None
    file_path: Optional[str] = None
    ai_feedback: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    score: Optional[float] = None
    attempt_id: Optional[int] = Field(default=None, foreign_key='attempt.id')
    submitted_at: datetime = Field(default_factory=utcnow)

    @property
    def word_count(self) -> Optional[int]:
        if self.submission_type != "writing":
            return None
        return len((self.content or "").split())


class MockTest(SQLModel, table=True):
    """A full timed test composed of ordered sections."""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    band_level: str = Field(default="band6", index=True)
    duration_minutes: int = 165
    is_active: bool = True
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None
    created_by: Optional[int] = Field(default=None, foreign_key='user.id')
    created_at: datetime = Field(default_factory=utcnow)
    sections: List['MockTestSection'] = Relationship(
        back_populates='mock_test',
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "MockTestSection.order"},
    )

    def is_available(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        if not self.is_active:
            return False
        if self.available_from and self.available_from > now:
            return False
        if self.available_until and self.available_until < now:
            return False
        return True


class MockTestSection(SQLModel, table=True):
    """A module slot inside a `MockTest` pointing at existing content."""
    id: Optional[int] = Field(default=None, primary_key=True)
    mock_test_id: int = Field(foreign_key='mocktest.id', index=True)
    module_type: str
    content_id: int
    order: int = 0
    duration_minutes: int = 30
    mock_test: Optional[MockTest] = Relationship(back_populates='sections')


class MockTestAttempt(SQLModel, table=True):
    """A user's sitting of a `MockTest` with per-module bands."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    mock_test_id: int = Field(foreign_key='mocktest.id', index=True)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    time_spent: Optional[int] = None
    total_score: Optional[int] = None
    reading_score: Optional[float] = None
    writing_score: Optional[float] = None
    listening_score: Optional[float] = None
    speaking_score: Optional[float] = None
    overall_band: Optional[float] = None
    details: Optional[dict] = Field(default=None, sa_column=Column(JSON))


class QuestionUsage(SQLModel, table=True):
    """Which bank question a user was served, and in which mock attempt."""
    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: int = Field(foreign_key='question.id', index=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    mock_test_attempt_id: Optional[int] = Field(default=None, foreign_key='mocktestattempt.id')
    used_at: datetime = Field(default_factory=utcnow)


class QuestionGenerationLog(SQLModel, table=True):
    """Audit row for every question generation request."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    mock_test_id: Optional[int] = Field(default=None, foreign_key='mocktest.id')
    module_type: str
    ielts_band_level: int
    questions_requested: int
    questions_generated: int
    generation_metadata: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    generated_at: datetime = Field(default_factory=utcnow)


class VocabularyWord(SQLModel, table=True):
    """A word in the daily vocabulary rotation.

    `priority` (0-100) drives which word is sent next.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    word: str = Field(index=True, unique=True)
    meaning: str
    example_sentence: Optional[str] = None
    pronunciation: Optional[str] = None
    difficulty_level: str = "intermediate"
    word_type: Optional[str] = None
    oxford_url: Optional[str] = None
    synonyms: Optional[list] = Field(default=None, sa_column=Column(JSON))
    antonyms: Optional[list] = Field(default=None, sa_column=Column(JSON))
    is_active: bool = True
    priority: int = 50
    created_at: datetime = Field(default_factory=utcnow)


class DailyVocabularyNotification(SQLModel, table=True):
    """One day's vocabulary broadcast and its delivery counters."""
    id: Optional[int] = Field(default=None, primary_key=True)
    vocabulary_word_id: int = Field(foreign_key='vocabularyword.id', index=True)
    notification_date: date = Field(index=True)
    status: str = "pending"
    target_audience: Optional[list] = Field(default=None, sa_column=Column(JSON))
    total_recipients: int = 0
    successful_sends: int = 0
    failed_sends: int = 0
    failure_reason: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    def mark_as_sent(self, total: int, successful: int, failed: int):
        self.status = "sent"
        self.total_recipients = total
        self.successful_sends = successful
        self.failed_sends = failed
        self.sent_at = utcnow()

    def mark_as_failed(self, reason: str):
        self.status = "failed"
        self.failure_reason = reason


class UserVocabularyInteraction(SQLModel, table=True):
    """viewed / practiced / mastered / bookmarked events."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    vocabulary_word_id: int = Field(foreign_key='vocabularyword.id', index=True)
    notification_id: Optional[int] = Field(default=None, foreign_key='dailyvocabularynotification.id')
    interaction_type: str
    interacted_at: datetime = Field(default_factory=utcnow)
    interaction_metadata: Optional[dict] = Field(default=None, sa_column=Column(JSON))


class NotificationDevice(SQLModel, table=True):
    """A push target registered by a user (browser, PWA or mobile app)."""
    __table_args__ = (UniqueConstraint('user_id', 'device_type', 'device_token'),)
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    device_type: str
    device_token: str
    browser_type: Optional[str] = None
    platform: Optional[str] = None
    subscription_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    is_active: bool = True
    last_used_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class NotificationPreference(SQLModel, table=True):
    """Per-user notification switches."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', unique=True)
    daily_vocabulary: bool = True
    practice_reminders: bool = True
    achievement_notifications: bool = True
    email_notifications: bool = False
    updated_at: datetime = Field(default_factory=utcnow)


# module -> (content table, `Attempt.content_type`)
CONTENT_MODELS = {
    "reading": (ReadingPassage, "reading_passage"),
    "listening": (ListeningExercise, "listening_exercise"),
    "writing": (WritingTask, "writing_task"),
    "speaking": (SpeakingPrompt, "speaking_prompt"),
}
