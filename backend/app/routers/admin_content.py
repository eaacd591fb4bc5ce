"""Admin CRUD for practice content."""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import TypeAdapter, ValidationError
from sqlmodel import Session

from .. import models, schemas
from ..auth import require_admin
from ..database import get_session
from ..errors import to_http
from ..services import LISTENING_AUDIO_MAX_BYTES, ContentService, content_summary

router = APIRouter(prefix="/admin", tags=["admin-content"])

_questions_adapter = TypeAdapter(List[schemas.QuestionIn])


def _detail(item) -> dict:
    return content_summary(item, include_questions=True, include_answers=True)


def _listing(db: Session, module: str, page: int, band_level: Optional[str]) -> dict:
    return schemas.page_out(ContentService(db, module).list(page, band_level=band_level), content_summary)


def _show(db: Session, module: str, content_id: int) -> dict:
    try:
        return {'data': _detail(ContentService(db, module).get(content_id))}
    except ValueError as e:
        raise to_http(e)


def _delete(db: Session, module: str, content_id: int, label: str) -> dict:
    try:
        ContentService(db, module).delete(content_id)
    except ValueError as e:
        raise to_http(e)
    return {'message': f'{label} deleted successfully'}


# -- reading passages --------------------------------------------------------

@router.get('/reading-passages')
def reading_index(page: int = 1, band_level: Optional[schemas.BandLevel] = None,
                  db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return _listing(db, 'reading', page, band_level)


@router.post('/reading-passages', status_code=201)
def reading_create(payload: schemas.ReadingPassageIn, db: Session = Depends(get_session),
                   admin: models.User = Depends(require_admin)):
    try:
        passage = ContentService(db, 'reading').save_reading(payload, admin)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Reading passage created successfully', 'data': _detail(passage)}


@router.get('/reading-passages/{content_id}')
def reading_show(content_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return _show(db, 'reading', content_id)


@router.put('/reading-passages/{content_id}')
def reading_update(content_id: int, payload: schemas.ReadingPassageIn, db: Session = Depends(get_session),
                   admin: models.User = Depends(require_admin)):
    try:
        passage = ContentService(db, 'reading').save_reading(payload, admin, content_id=content_id)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Reading passage updated successfully', 'data': _detail(passage)}


@router.delete('/reading-passages/{content_id}')
def reading_delete(content_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return _delete(db, 'reading', content_id, 'Reading passage')


# -- listening exercises -----------------------------------------------------

def _parse_questions(raw: str) -> List[schemas.QuestionIn]:
    """Questions arrive as a JSON string inside the multipart form."""
    try:
        questions = _questions_adapter.validate_json(raw)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False,
                                                              include_input=False))
    if not questions:
        raise HTTPException(status_code=422, detail='At least one question is required')
    return questions


def _read_audio(audio_file: Optional[UploadFile]):
    if audio_file is None or not audio_file.filename:
        return None
    content = audio_file.file.read(LISTENING_AUDIO_MAX_BYTES + 1)
    return audio_file.filename, content, audio_file.content_type


@router.get('/listening-exercises')
def listening_index(page: int = 1, band_level: Optional[schemas.BandLevel] = None,
                    db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return _listing(db, 'listening', page, band_level)


@router.post('/listening-exercises', status_code=201)
def listening_create(
    title: str = Form(..., min_length=1, max_length=255),
    duration: int = Form(...),
    difficulty_level: str = Form(...),
    band_level: str = Form(...),
    questions: str = Form(...),
    transcript: Optional[str] = Form(default=None),
    audio_file: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_session),
    admin: models.User = Depends(require_admin),
):
    fields = {'title': title, 'duration': duration, 'difficulty_level': difficulty_level,
              'band_level': band_level, 'transcript': transcript}
    parsed = _parse_questions(questions)
    try:
        exercise = ContentService(db, 'listening').save_listening(fields, parsed, admin, _read_audio(audio_file))
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Listening exercise created successfully', 'data': _detail(exercise)}


@router.get('/listening-exercises/{content_id}')
def listening_show(content_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return _show(db, 'listening', content_id)


@router.put('/listening-exercises/{content_id}')
def listening_update(
    content_id: int,
    title: str = Form(..., min_length=1, max_length=255),
    duration: int = Form(...),
    difficulty_level: str = Form(...),
    band_level: str = Form(...),
    questions: str = Form(...),
    transcript: Optional[str] = Form(default=None),
    audio_file: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_session),
    admin: models.User = Depends(require_admin),
):
    fields = {'title': title, 'duration': duration, 'difficulty_level': difficulty_level,
              'band_level': band_level, 'transcript': transcript}
    parsed = _parse_questions(questions)
    try:
        exercise = ContentService(db, 'listening').save_listening(
            fields, parsed, admin, _read_audio(audio_file), content_id=content_id)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Listening exercise updated successfully', 'data': _detail(exercise)}


@router.delete('/listening-exercises/{content_id}')
def listening_delete(content_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return _delete(db, 'listening', content_id, 'Listening exercise')


# -- writing tasks -----------------------------------------------------------

@router.get('/writing-tasks')
def writing_index(page: int = 1, band_level: Optional[schemas.BandLevel] = None,
                  db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return _listing(db, 'writing', page, band_level)


@router.post('/writing-tasks', status_code=201)
def writing_create(payload: schemas.WritingTaskIn, db: Session = Depends(get_session),
                   admin: models.User = Depends(require_admin)):
    task = ContentService(db, 'writing').create(payload, admin)
    return {'message': 'Writing task created successfully', 'data': task.model_dump()}


@router.get('/writing-tasks/{content_id}')
def writing_show(content_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return _show(db, 'writing', content_id)


@router.put('/writing-tasks/{content_id}')
def writing_update(content_id: int, payload: schemas.WritingTaskIn, db: Session = Depends(get_session),
                   admin: models.User = Depends(require_admin)):
    try:
        task = ContentService(db, 'writing').update(content_id, payload)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Writing task updated successfully', 'data': task.model_dump()}


@router.delete('/writing-tasks/{content_id}')
def writing_delete(content_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return _delete(db, 'writing', content_id, 'Writing task')


# -- speaking prompts --------------------------------------------------------

@router.get('/speaking-prompts')
def speaking_index(page: int = 1, band_level: Optional[schemas.BandLevel] = None,
                   db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return _listing(db, 'speaking', page, band_level)


@router.post('/speaking-prompts', status_code=201)
def speaking_create(payload: schemas.SpeakingPromptIn, db: Session = Depends(get_session),
                    admin: models.User = Depends(require_admin)):
    prompt = ContentService(db, 'speaking').create(payload, admin)
    return {'message': 'Speaking prompt created successfully', 'data': prompt.model_dump()}


@router.get('/speaking-prompts/{content_id}')
def speaking_show(content_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return _show(db, 'speaking', content_id)


@router.put('/speaking-prompts/{content_id}')
def speaking_update(content_id: int, payload: schemas.SpeakingPromptIn, db: Session = Depends(get_session),
                    admin: models.User = Depends(require_admin)):
    try:
        prompt = ContentService(db, 'speaking').update(content_id, payload)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Speaking prompt updated successfully', 'data': prompt.model_dump()}


@router.delete('/speaking-prompts/{content_id}')
def speaking_delete(content_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return _delete(db, 'speaking', content_id, 'Speaking prompt')
