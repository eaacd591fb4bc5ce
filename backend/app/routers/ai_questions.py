"""Question-bank endpoints for mock tests."""

from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, schemas
from ..auth import get_current_user, require_admin
from ..database import get_session
from ..errors import to_http
from ..question_bank import QuestionBankService

router = APIRouter(prefix="/ai-questions", tags=["ai-questions"])


def get_openai_transport() -> Optional[httpx.BaseTransport]:
    """Transport for OpenAI calls; `None` uses the network. Overridden in tests."""
    return None


def _service(db: Session, user: models.User, transport: Optional[httpx.BaseTransport]) -> QuestionBankService:
    return QuestionBankService(db, user, transport=transport)


@router.post('/mock-tests/{mock_test_id}/generate')
def generate(mock_test_id: int, payload: schemas.GenerateQuestionsIn, db: Session = Depends(get_session),
             user: models.User = Depends(get_current_user), transport=Depends(get_openai_transport)):
    try:
        return _service(db, user, transport).generate_for_mock_test(mock_test_id, payload)
    except ValueError as e:
        raise to_http(e)


@router.post('/mock-tests/{mock_test_id}/start', status_code=201)
def start(mock_test_id: int, payload: schemas.GenerateQuestionsIn, db: Session = Depends(get_session),
          user: models.User = Depends(get_current_user), transport=Depends(get_openai_transport)):
    try:
        return _service(db, user, transport).start_with_questions(mock_test_id, payload)
    except ValueError as e:
        raise to_http(e)


@router.get('/stats')
def stats(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return _service(db, user, None).user_stats()


@router.get('/history')
def history(page: int = 1, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return _service(db, user, None).history(page)


@router.post('/preview')
def preview(payload: schemas.PreviewQuestionsIn, db: Session = Depends(get_session),
            user: models.User = Depends(get_current_user)):
    return _service(db, user, None).preview(payload)


@router.get('/system-status')
def system_status(db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return _service(db, admin, None).system_status()


@router.post('/retry-openai')
def retry_openai(db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return _service(db, admin, None).retry_openai()
