"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
router handlers and tests. The `*_out` helpers turn table models into
JSON-ready dicts (hiding secrets and answer keys where needed).
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

BandLevel = Literal['band6', 'band7', 'band8', 'band9']
Difficulty = Literal['beginner', 'intermediate', 'advanced']
ModuleType = Literal['reading', 'writing', 'listening', 'speaking']
QuestionType = Literal[
    'multiple_choice', 'true_false', 'true_false_not_given', 'fill_blank', 'short_answer',
    'sentence_completion', 'matching', 'form_completion', 'note_completion', 'map_labeling',
    'diagram_labeling', 'table_completion',
]


class RegisterIn(BaseModel):
    """Payload for self-registration."""
    name: str = Field(min_length=1, max_length=255)
    email: str
    country_code: str
    mobile: str
    password: str
    password_confirmation: str
    role: Literal['admin', 'student'] = 'student'
    band_level: Optional[BandLevel] = None
    school_name: Optional[str] = Field(default=None, max_length=255)


class LoginIn(BaseModel):
    email: str
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str
    token_type: str = 'bearer'
    user: dict


class AvailabilityIn(BaseModel):
    field: Literal['email', 'mobile']
    value: str


class StudentCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str
    password: str = Field(min_length=8)
    band_level: BandLevel
    school_name: Optional[str] = Field(default=None, max_length=255)
    class_name: Optional[str] = Field(default=None, max_length=255)
    grade_level: Optional[str] = Field(default=None, max_length=255)
    mobile_number: Optional[str] = Field(default=None, max_length=20)
    parent_name: Optional[str] = Field(default=None, max_length=255)
    parent_email: Optional[str] = Field(default=None, max_length=255)
    parent_mobile: Optional[str] = Field(default=None, max_length=20)
    is_active: bool = True


class StudentUpdateIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str
    band_level: BandLevel
    school_name: Optional[str] = Field(default=None, max_length=255)
    class_name: Optional[str] = Field(default=None, max_length=255)
    grade_level: Optional[str] = Field(default=None, max_length=255)
    mobile_number: Optional[str] = Field(default=None, max_length=20)
    address: Optional[str] = None
    city: Optional[str] = Field(default=None, max_length=255)
    parent_name: Optional[str] = Field(default=None, max_length=255)
    parent_email: Optional[str] = Field(default=None, max_length=255)
    parent_mobile: Optional[str] = Field(default=None, max_length=20)
    is_active: Optional[bool] = None


class PasswordUpdateIn(BaseModel):
    password: str = Field(min_length=8)
    password_confirmation: str


class BandAssignIn(BaseModel):
    user_id: int
    band_level: BandLevel
    school_name: Optional[str] = Field(default=None, max_length=255)


class BandUpdateIn(BaseModel):
    band_level: BandLevel
    school_name: Optional[str] = Field(default=None, max_length=255)


class BulkBandIn(BaseModel):
    student_ids: List[int] = Field(min_length=1)
    band_level: BandLevel


class QuestionIn(BaseModel):
    """A question inside a reading passage or listening exercise."""
    id: Optional[int] = None
    question_text: str = Field(min_length=1)
    question_type: QuestionType
    correct_answer: str = Field(min_length=1)
    options: Optional[List[str]] = None
    points: int = Field(default=1, ge=1)
    explanation: Optional[str] = None


class ReadingPassageIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    difficulty_level: Difficulty
    band_level: BandLevel
    time_limit: int = Field(ge=1, le=120)
    questions: List[QuestionIn] = Field(min_length=1)


class WritingTaskIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    task_type: Literal['task1', 'task2']
    prompt: str = Field(min_length=1)
    instructions: Optional[str] = None
    time_limit: int = Field(ge=1, le=120)
    word_limit: int = Field(ge=50, le=1000)
    band_level: BandLevel


class SpeakingPromptIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    prompt_text: str = Field(min_length=1)
    preparation_time: int = Field(ge=0, le=600)
    response_time: int = Field(ge=10, le=900)
    difficulty_level: Difficulty
    band_level: BandLevel


class AnswerItem(BaseModel):
    question_id: int
    user_answer: Optional[str] = None


class ObjectiveSubmitIn(BaseModel):
    """Reading/listening answer sheet."""
    answers: List[AnswerItem]
    time_spent: int = Field(ge=0)


class WritingSubmitIn(BaseModel):
    content: str = Field(min_length=50)
    time_spent: int = Field(ge=0)


class MockTestSectionIn(BaseModel):
    module_type: ModuleType
    content_id: int
    duration_minutes: int = Field(ge=1)


class MockTestIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    band_level: BandLevel
    duration_minutes: int = Field(ge=1)
    is_active: bool = True
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None
    sections: List[MockTestSectionIn] = Field(min_length=1)


class MockTestSubmitIn(BaseModel):
    reading_answers: Dict[int, str] = Field(default_factory=dict)
    listening_answers: Dict[int, str] = Field(default_factory=dict)
    writing_response: Optional[str] = None
    audio_recording: Optional[str] = None
    time_spent: Optional[int] = Field(default=None, ge=0)


class ModuleRequest(BaseModel):
    type: ModuleType
    questions_count: int = Field(ge=1, le=20)


class GenerateQuestionsIn(BaseModel):
    ielts_band_level: int = Field(ge=6, le=9)
    modules: List[ModuleRequest] = Field(min_length=1)


class PreviewQuestionsIn(BaseModel):
    module_type: ModuleType
    ielts_band_level: int = Field(ge=6, le=9)
    count: int = Field(default=3, ge=1, le=5)


class VocabularyWordIn(BaseModel):
    word: str = Field(min_length=1, max_length=255)
    meaning: str = Field(min_length=1)
    example_sentence: Optional[str] = None
    pronunciation: Optional[str] = Field(default=None, max_length=255)
    difficulty_level: Difficulty = 'intermediate'
    word_type: Optional[str] = Field(default=None, max_length=50)
    oxford_url: Optional[str] = Field(default=None, max_length=500)
    synonyms: Optional[List[str]] = None
    antonyms: Optional[List[str]] = None
    is_active: bool = True
    priority: int = Field(default=50, ge=0, le=100)


class VocabularyWordUpdateIn(BaseModel):
    word: Optional[str] = Field(default=None, min_length=1, max_length=255)
    meaning: Optional[str] = Field(default=None, min_length=1)
    example_sentence: Optional[str] = None
    pronunciation: Optional[str] = Field(default=None, max_length=255)
    difficulty_level: Optional[Difficulty] = None
    word_type: Optional[str] = Field(default=None, max_length=50)
    oxford_url: Optional[str] = Field(default=None, max_length=500)
    synonyms: Optional[List[str]] = None
    antonyms: Optional[List[str]] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = Field(default=None, ge=0, le=100)


class BulkImportIn(BaseModel):
    """Rows are validated one by one so a bad row does not reject the batch."""
    words: List[dict] = Field(min_length=1)


class InteractionIn(BaseModel):
    interaction_type: Literal['viewed', 'practiced', 'mastered']
    metadata: Optional[dict] = None


class DeviceIn(BaseModel):
    device_type: Literal['web', 'mobile_app', 'pwa']
    device_token: str = Field(min_length=1)
    browser_type: Optional[str] = None
    platform: Optional[str] = None
    subscription_data: Optional[dict] = None


class DeviceUnregisterIn(BaseModel):
    device_type: Literal['web', 'mobile_app', 'pwa']
    device_token: str


class PreferencesIn(BaseModel):
    daily_vocabulary: Optional[bool] = None
    practice_reminders: Optional[bool] = None
    achievement_notifications: Optional[bool] = None
    email_notifications: Optional[bool] = None


class FileDeleteIn(BaseModel):
    path: str


class FileDeleteMultipleIn(BaseModel):
    paths: List[str] = Field(min_length=1)


class CleanupIn(BaseModel):
    days_old: int = Field(default=30, ge=1, le=365)


BAND_DESCRIPTORS = {
    'band6': ('Band 6', 'Competent User - Generally effective command of the language'),
    'band7': ('Band 7', 'Good User - Operational command of the language'),
    'band8': ('Band 8', 'Very Good User - Fully operational command with occasional inaccuracies'),
    'band9': ('Band 9', 'Expert User - Fully operational command of the language'),
}


def band_display(band_level: Optional[str]) -> str:
    if not band_level:
        return 'Not Assigned'
    return BAND_DESCRIPTORS.get(band_level, (band_level, ''))[0]


def user_out(user) -> dict:
    data = user.model_dump(exclude={'password_hash'})
    data['band_level_display'] = band_display(user.band_level)
    data['status'] = 'Active' if user.is_active else 'Inactive'
    return data


def question_out(question, include_answer: bool = False) -> dict:
    data = {
        'id': question.id,
        'question_text': question.question_text,
        'question_type': question.question_type,
        'options': question.options,
        'points': question.points,
    }
    if include_answer:
        data['correct_answer'] = question.correct_answer
    return data


def attempt_out(attempt) -> dict:
    data = attempt.model_dump()
    data['percentage'] = attempt.percentage
    return data


def submission_out(submission) -> dict:
    data = submission.model_dump()
    data['word_count'] = submission.word_count
    return data


def mock_test_out(mock_test) -> dict:
    data = mock_test.model_dump()
    data['sections'] = [s.model_dump() for s in mock_test.sections]
    data['is_available'] = mock_test.is_available()
    return data


def page_out(page: dict, serializer) -> dict:
    """Serialise the `data` of a `repositories.paginate` result."""
    return {**page, 'data': [serializer(item) for item in page['data']]}
