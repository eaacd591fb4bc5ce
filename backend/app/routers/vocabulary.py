"""Daily vocabulary (student and admin) and notification devices."""

from datetime import date, datetime, time
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, schemas
from ..auth import require_admin, require_student
from ..config import settings
from ..database import get_session
from ..errors import to_http
from ..utils.push import PushSender
from ..vocabulary import NotificationService, VocabularyService, word_out

student_router = APIRouter(prefix="/student/vocabulary", tags=["vocabulary"])
notifications_router = APIRouter(prefix="/student/notifications", tags=["notifications"])
admin_router = APIRouter(prefix="/admin/vocabulary", tags=["admin-vocabulary"])

InteractionType = Literal['viewed', 'practiced', 'mastered', 'bookmarked']


def get_push_sender():
    """Yield a push sender for the request. Overridden in tests."""
    sender = PushSender(settings.FCM_SERVER_KEY, settings.VOCAB_RETRY_ATTEMPTS)
    try:
        yield sender
    finally:
        sender.close()


def _day_bounds(date_from: Optional[date], date_to: Optional[date]):
    start = datetime.combine(date_from, time.min) if date_from else None
    end = datetime.combine(date_to, time.max) if date_to else None
    return start, end


# -- student ---------------------------------------------------------------

@student_router.get('/daily')
def daily_word(db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    return VocabularyService(db, user).daily_word()


@student_router.get('/history')
def history(interaction_type: Optional[InteractionType] = None, date_from: Optional[date] = None,
            date_to: Optional[date] = None, page: int = 1, db: Session = Depends(get_session),
            user: models.User = Depends(require_student)):
    start, end = _day_bounds(date_from, date_to)
    return VocabularyService(db, user).history(interaction_type, start, end, page)


@student_router.get('/{word_id}')
def show(word_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    try:
        return VocabularyService(db, user).show(word_id)
    except ValueError as e:
        raise to_http(e)


@student_router.post('/{word_id}/interactions')
def record_interaction(word_id: int, payload: schemas.InteractionIn, db: Session = Depends(get_session),
                       user: models.User = Depends(require_student)):
    try:
        row = VocabularyService(db, user).record_interaction(word_id, payload.interaction_type, payload.metadata)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Interaction recorded successfully', 'interaction': row.model_dump()}


@student_router.post('/{word_id}/bookmark')
def bookmark(word_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    try:
        row = VocabularyService(db, user).bookmark(word_id)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Word bookmarked successfully', 'interaction': row.model_dump()}


@student_router.delete('/{word_id}/bookmark')
def remove_bookmark(word_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    try:
        VocabularyService(db, user).remove_bookmark(word_id)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Bookmark removed successfully'}


# -- notifications ---------------------------------------------------------

@notifications_router.post('/devices', status_code=201)
def register_device(payload: schemas.DeviceIn, db: Session = Depends(get_session),
                    user: models.User = Depends(require_student)):
    try:
        device = NotificationService(db).register_device(user, payload)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Device registered successfully', 'device': device.model_dump()}


@notifications_router.post('/devices/unregister')
def unregister_device(payload: schemas.DeviceUnregisterIn, db: Session = Depends(get_session),
                      user: models.User = Depends(require_student)):
    try:
        NotificationService(db).unregister_device(user, payload.device_type, payload.device_token)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Device unregistered successfully'}


@notifications_router.get('/preferences')
def get_preferences(db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    prefs = NotificationService(db).preferences(user)
    return {'preferences': prefs.model_dump(exclude={'id', 'user_id'})}


@notifications_router.put('/preferences')
def update_preferences(payload: schemas.PreferencesIn, db: Session = Depends(get_session),
                       user: models.User = Depends(require_student)):
    prefs = NotificationService(db).update_preferences(user, payload)
    return {'message': 'Preferences updated successfully', 'preferences': prefs.model_dump(exclude={'id', 'user_id'})}


# -- admin -----------------------------------------------------------------

@admin_router.get('')
def admin_index(difficulty_level: Optional[schemas.Difficulty] = None, is_active: Optional[bool] = None,
                search: Optional[str] = None, page: int = 1, db: Session = Depends(get_session),
                admin: models.User = Depends(require_admin)):
    return VocabularyService(db, admin).list(difficulty_level, is_active, search, page)


@admin_router.post('', status_code=201)
def admin_create(payload: schemas.VocabularyWordIn, db: Session = Depends(get_session),
                 admin: models.User = Depends(require_admin)):
    try:
        word = VocabularyService(db, admin).create(payload)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Vocabulary word created successfully', 'word': word_out(word)}


@admin_router.post('/bulk-import')
def admin_bulk_import(payload: schemas.BulkImportIn, db: Session = Depends(get_session),
                      admin: models.User = Depends(require_admin)):
    return VocabularyService(db, admin).bulk_import(payload.words)


@admin_router.get('/notifications')
def admin_notification_history(date_from: Optional[date] = None, date_to: Optional[date] = None,
                               status: Optional[Literal['pending', 'sent', 'failed']] = None, page: int = 1,
                               db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return VocabularyService(db, admin).notification_history(date_from, date_to, status, page)


@admin_router.get('/{word_id}')
def admin_show(word_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    try:
        return {'word': word_out(VocabularyService(db, admin).get(word_id))}
    except ValueError as e:
        raise to_http(e)


@admin_router.put('/{word_id}')
def admin_update(word_id: int, payload: schemas.VocabularyWordUpdateIn, db: Session = Depends(get_session),
                 admin: models.User = Depends(require_admin)):
    try:
        word = VocabularyService(db, admin).update(word_id, payload)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Vocabulary word updated successfully', 'word': word_out(word)}


@admin_router.delete('/{word_id}')
def admin_delete(word_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    try:
        message = VocabularyService(db, admin).delete(word_id)
    except ValueError as e:
        raise to_http(e)
    return {'message': message}


@admin_router.post('/{word_id}/test-notification')
def admin_test_notification(word_id: int, db: Session = Depends(get_session),
                            admin: models.User = Depends(require_admin),
                            sender: PushSender = Depends(get_push_sender)):
    try:
        return NotificationService(db, sender).send_test(word_id, admin)
    except ValueError as e:
        raise to_http(e)
