"""Per-user question bank for mock tests.

Questions a user has not seen yet are reused first; the remainder is
generated (OpenAI when configured and healthy, templates otherwise) and
stored in the bank so other users can be served them later.
"""

import logging
from typing import List, Optional

import httpx
from sqlmodel import Session

from . import models, repositories, schemas
from .config import settings
from .errors import ConflictError, NotFoundError
from .utils.question_generator import (
    MODULE_QUESTION_TYPES,
    POINTS_BY_LEVEL,
    GenerationError,
    OpenAIQuestionClient,
    ProviderStatus,
    TemplateQuestionGenerator,
)

logger = logging.getLogger(__name__)

# shared by every request; a failing provider is skipped for an hour
provider_status = ProviderStatus(cooldown_seconds=3600)

_METADATA_KEYS = ('passage_title', 'passage_text', 'audio_transcript', 'task_requirements',
                  'assessment_criteria', 'topic', 'follow_up_questions')


def bank_question_out(question: models.Question) -> dict:
    data = schemas.question_out(question)
    data.update({
        'module_type': question.module_type,
        'ielts_band_level': question.ielts_band_level,
        'is_ai_generated': question.is_ai_generated,
        'ai_metadata': question.ai_metadata,
    })
    return data


class QuestionBankService:
    """Serve, generate and track bank questions for one user."""
    def __init__(self, session: Session, user: models.User, transport: Optional[httpx.BaseTransport] = None):
        self.session = session
        self.user = user
        self.transport = transport
        self.repo = repositories.QuestionRepository(session)
        self.log_repo = repositories.GenerationLogRepository(session)
        self.mock_repo = repositories.MockTestRepository(session)

    def openai_enabled(self) -> bool:
        return bool(settings.OPENAI_API_KEY) and not provider_status.is_unavailable()

    def _generate(self, module_type: str, level: int, count: int):
        """Return `(items, source, metadata)` from OpenAI or the templates."""
        if self.openai_enabled():
            client = OpenAIQuestionClient(
                settings.OPENAI_API_KEY, settings.OPENAI_BASE_URL, settings.OPENAI_MODEL,
                settings.OPENAI_TIMEOUT_SECONDS, transport=self.transport,
            )
            try:
                items, meta = client.generate(module_type, level, count)
            except GenerationError as exc:
                logger.warning("OpenAI generation failed, using templates for 1h: %s", exc)
                provider_status.mark_unavailable()
            else:
                items = items[:count]
                if len(items) < count:
                    items += TemplateQuestionGenerator().generate(module_type, level, count - len(items))
                return items, 'openai', meta
            finally:
                client.close()
        return TemplateQuestionGenerator().generate(module_type, level, count), 'template', {}

    def _store(self, items: List[dict], module_type: str, level: int, source: str, meta: dict) -> List[models.Question]:
        bank_type = MODULE_QUESTION_TYPES[module_type]
        stored = []
        for item in items:
            metadata = {k: item[k] for k in _METADATA_KEYS if item.get(k) is not None}
            metadata.update({'source': source, 'question_format': item.get('question_type'), **meta})
            question = models.Question(
                question_text=item['question_text'],
                question_type=bank_type,
                correct_answer=str(item.get('correct_answer') or ''),
                options=item.get('options') if isinstance(item.get('options'), list) else None,
                points=POINTS_BY_LEVEL.get(level, 1),
                module_type=module_type,
                ielts_band_level=level,
                is_ai_generated=True,
                ai_metadata=metadata,
            )
            self.session.add(question)
            stored.append(question)
        self.session.commit()
        for question in stored:
            self.session.refresh(question)
        return stored

    def questions_for_user(self, module_type: str, level: int, count: int,
                           mock_test_id: Optional[int] = None) -> List[models.Question]:
        """Unused bank questions first, newly generated ones for the rest."""
        used = self.repo.used_question_ids(self.user.id, module_type, level)
        questions = list(self.repo.available(module_type, MODULE_QUESTION_TYPES[module_type], level, used, count))
        needed = count - len(questions)
        source = 'bank'
        generated = []
        if needed > 0:
            items, source, meta = self._generate(module_type, level, needed)
            generated = self._store(items, module_type, level, source, meta)
            questions += generated
        self.log_repo.create(models.QuestionGenerationLog(
            user_id=self.user.id,
            mock_test_id=mock_test_id,
            module_type=module_type,
            ielts_band_level=level,
            questions_requested=count,
            questions_generated=len(generated),
            generation_metadata={'source': source, 'reused': count - len(generated)},
        ))
        return questions

    def _mock_test(self, mock_test_id: int) -> models.MockTest:
        mock_test = self.mock_repo.get(mock_test_id)
        if not mock_test:
            raise NotFoundError("Mock test not found")
        return mock_test

    def generate_for_mock_test(self, mock_test_id: int, data: schemas.GenerateQuestionsIn) -> dict:
        mock_test = self._mock_test(mock_test_id)
        if self.mock_repo.attempts_for_user(self.user.id, mock_test.id, completed=True):
            raise ConflictError("You have already completed this mock test. Questions cannot be regenerated.")
        modules = {}
        for module in data.modules:
            questions = self.questions_for_user(module.type, data.ielts_band_level, module.questions_count,
                                                mock_test.id)
            modules[module.type] = {
                'questions': [bank_question_out(q) for q in questions],
                'count': len(questions),
                'requested': module.questions_count,
            }
        return {
            'message': 'Questions generated successfully',
            'mock_test_id': mock_test.id,
            'ielts_band_level': data.ielts_band_level,
            'modules': modules,
            'total_questions': sum(m['count'] for m in modules.values()),
        }

    def start_with_questions(self, mock_test_id: int, data: schemas.GenerateQuestionsIn) -> dict:
        mock_test = self._mock_test(mock_test_id)
        if self.mock_repo.attempts_for_user(self.user.id, mock_test.id, completed=False):
            raise ConflictError(
                "You have an incomplete attempt for this mock test. Please complete or abandon it first."
            )
        attempt = self.mock_repo.save_attempt(models.MockTestAttempt(user_id=self.user.id, mock_test_id=mock_test.id))
        served = []
        for module in data.modules:
            questions = self.questions_for_user(module.type, data.ielts_band_level, module.questions_count,
                                                mock_test.id)
            self.repo.record_usage(questions, self.user.id, attempt.id)
            served += questions
        return {
            'message': 'Mock test started successfully',
            'attempt_id': attempt.id,
            'mock_test': schemas.mock_test_out(mock_test),
            'questions': [bank_question_out(q) for q in served],
            'started_at': attempt.started_at,
            'duration_minutes': mock_test.duration_minutes,
        }

    def user_stats(self) -> dict:
        return {
            'user_usage': [
                {'module_type': m, 'ielts_band_level': lvl, 'used_count': n, 'last_used': last}
                for m, lvl, n, last in self.repo.usage_for_user(self.user.id)
            ],
            'available_questions': [
                {'module_type': m, 'ielts_band_level': lvl, 'total_available': total,
                 'active_available': int(active or 0)}
                for m, lvl, total, active in self.repo.bank_stats()
            ],
        }

    def history(self, page: int = 1) -> dict:
        page_data = repositories.paginate(self.session, self.log_repo.query(self.user.id), page, 20)

        def serialize(log: models.QuestionGenerationLog) -> dict:
            data = log.model_dump()
            mock_test = self.mock_repo.get(log.mock_test_id) if log.mock_test_id else None
            data['mock_test'] = {'id': mock_test.id, 'title': mock_test.title} if mock_test else None
            return data

        return schemas.page_out(page_data, serialize)

    def preview(self, data: schemas.PreviewQuestionsIn) -> dict:
        """Unused bank questions, without recording usage."""
        used = self.repo.used_question_ids(self.user.id, data.module_type, data.ielts_band_level)
        questions = self.repo.available(data.module_type, MODULE_QUESTION_TYPES[data.module_type],
                                        data.ielts_band_level, used, data.count)
        return {
            'questions': [bank_question_out(q) for q in questions],
            'available_count': len(questions),
            'total_used_by_user': len(used),
        }

    def system_status(self) -> dict:
        configured = bool(settings.OPENAI_API_KEY)
        available = self.openai_enabled()
        status = {
            'openai_available': available,
            'openai_configured': configured,
            'mock_service_available': True,
            'current_service': 'OpenAI' if available else 'Mock Service',
            'total_questions': self.repo.count_ai_generated(),
            'openai_cache_expires': 'In 1 hour' if provider_status.is_unavailable() else 'N/A',
        }
        recommendations = []
        if not configured:
            recommendations.append('Configure OpenAI API key in the environment (OPENAI_API_KEY)')
        if configured and not available:
            recommendations += [
                'Add billing information to OpenAI account',
                'Check OpenAI usage limits and quotas',
                'Verify API key permissions',
            ]
        if status['total_questions'] < 50:
            recommendations.append('Generate more questions to build question pool')
        return {
            'status': status,
            'message': 'OpenAI service is available' if available else 'Using mock service (OpenAI unavailable)',
            'recommendations': recommendations,
        }

    def retry_openai(self) -> dict:
        provider_status.clear()
        success = self.openai_enabled()
        return {
            'success': success,
            'message': 'OpenAI connection restored' if success else 'OpenAI still unavailable',
            'status': self.system_status()['status'],
        }
