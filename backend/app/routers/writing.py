"""Student writing and speaking practice."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlmodel import Session

from .. import models, schemas
from ..auth import require_student
from ..database import get_session
from ..errors import to_http
from ..services import RECORDING_MAX_BYTES, SpeakingService, WritingService

writing_router = APIRouter(prefix="/student/writing", tags=["writing"])
speaking_router = APIRouter(prefix="/student/speaking", tags=["speaking"])


@writing_router.get('')
def writing_index(task_type: Optional[Literal['task1', 'task2']] = None, db: Session = Depends(get_session),
                  user: models.User = Depends(require_student)):
    return {'data': WritingService(db, user).index(task_type)}


@writing_router.get('/tips')
def writing_tips(db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    return WritingService(db, user).tips()


@writing_router.get('/history')
def writing_history(page: int = 1, db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    return WritingService(db, user).history(page)


@writing_router.get('/submissions/{submission_id}/results')
def writing_results(submission_id: int, db: Session = Depends(get_session),
                    user: models.User = Depends(require_student)):
    try:
        return WritingService(db, user).results(submission_id)
    except ValueError as e:
        raise to_http(e)


@writing_router.get('/{task_id}')
def writing_show(task_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    try:
        task = WritingService(db, user).content(task_id)
    except ValueError as e:
        raise to_http(e)
    return {'task': task.model_dump()}


@writing_router.post('/{task_id}/submit', status_code=201)
def writing_submit(task_id: int, payload: schemas.WritingSubmitIn, db: Session = Depends(get_session),
                   user: models.User = Depends(require_student)):
    try:
        result = WritingService(db, user).submit(task_id, payload.content, payload.time_spent)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Writing submitted successfully', **result}


@speaking_router.get('')
def speaking_index(difficulty: Optional[schemas.Difficulty] = None, db: Session = Depends(get_session),
                   user: models.User = Depends(require_student)):
    return {'data': SpeakingService(db, user).index(difficulty)}


@speaking_router.get('/history')
def speaking_history(page: int = 1, db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    return SpeakingService(db, user).history(page)


@speaking_router.get('/submissions/{submission_id}/results')
def speaking_results(submission_id: int, db: Session = Depends(get_session),
                     user: models.User = Depends(require_student)):
    try:
        return SpeakingService(db, user).results(submission_id)
    except ValueError as e:
        raise to_http(e)


@speaking_router.get('/{prompt_id}')
def speaking_show(prompt_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    try:
        prompt = SpeakingService(db, user).content(prompt_id)
    except ValueError as e:
        raise to_http(e)
    return {'prompt': prompt.model_dump()}


@speaking_router.post('/{prompt_id}/submit', status_code=201)
def speaking_submit(
    prompt_id: int,
    audio_file: UploadFile = File(...),
    time_spent: int = Form(..., ge=0),
    transcript: Optional[str] = Form(default=None),
    db: Session = Depends(get_session),
    user: models.User = Depends(require_student),
):
    """Store a recording and score it.

    The upload is read up to one byte past the limit so oversize files are
    rejected by validation without buffering them whole.
    """
    audio = audio_file.file.read(RECORDING_MAX_BYTES + 1)
    try:
        result = SpeakingService(db, user).submit(
            prompt_id, audio_file.filename or '', audio, audio_file.content_type, time_spent, transcript,
        )
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Speaking response submitted successfully', **result}
