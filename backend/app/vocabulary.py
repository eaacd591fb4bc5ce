"""Daily vocabulary: word management, student interactions, devices and delivery."""

import logging
import random
from datetime import date, datetime, timedelta
from typing import List, Optional

from pydantic import ValidationError
from sqlmodel import Session

from . import models, repositories, schemas
from .config import settings
from .errors import NotFoundError
from .utils.push import PushSender, build_payload

logger = logging.getLogger(__name__)


def oxford_url(word: str) -> str:
    return settings.OXFORD_BASE_URL + word.strip().lower().replace(' ', '-')


def word_out(word: models.VocabularyWord) -> dict:
    data = word.model_dump()
    data['oxford_url'] = word.oxford_url or oxford_url(word.word)
    return data


class VocabularyService:
    """Admin CRUD for words plus the student-facing daily word and history."""
    def __init__(self, session: Session, user: Optional[models.User] = None):
        self.session = session
        self.user = user
        self.repo = repositories.VocabularyRepository(session)

    def get(self, word_id: int) -> models.VocabularyWord:
        word = self.repo.get(word_id)
        if not word:
            raise NotFoundError("Vocabulary word not found")
        return word

    def list(self, difficulty_level=None, is_active=None, search=None, page: int = 1) -> dict:
        stmt = self.repo.words_query(difficulty_level, is_active, search)
        return schemas.page_out(repositories.paginate(self.session, stmt, page, 20), word_out)

    def create(self, data: schemas.VocabularyWordIn) -> models.VocabularyWord:
        if self.repo.get_by_word(data.word):
            raise ValueError(f"The word '{data.word}' already exists.")
        word = models.VocabularyWord(**data.model_dump())
        word.word = word.word.strip()
        word.oxford_url = word.oxford_url or oxford_url(word.word)
        return self.repo.save(word)

    def update(self, word_id: int, data: schemas.VocabularyWordUpdateIn) -> models.VocabularyWord:
        word = self.get(word_id)
        fields = data.model_dump(exclude_unset=True)
        if 'word' in fields and fields['word'] is not None:
            other = self.repo.get_by_word(fields['word'])
            if other and other.id != word.id:
                raise ValueError(f"The word '{fields['word']}' already exists.")
        for key, value in fields.items():
            setattr(word, key, value)
        if not word.oxford_url:
            word.oxford_url = oxford_url(word.word)
        return self.repo.save(word)

    def delete(self, word_id: int) -> str:
        """Delete the word, or only deactivate it when it was ever broadcast."""
        word = self.get(word_id)
        if self.repo.has_notifications(word.id):
            word.is_active = False
            self.repo.save(word)
            return 'Vocabulary word deactivated (has notification history)'
        self.repo.delete(word)
        return 'Vocabulary word deleted successfully'

    def bulk_import(self, rows: List[dict]) -> dict:
        imported = 0
        errors = []
        for index, row in enumerate(rows):
            try:
                data = schemas.VocabularyWordIn(**row)
            except ValidationError as exc:
                first = exc.errors()[0]
                field = '.'.join(str(part) for part in first['loc']) or 'row'
                errors.append(f"Row {index}: {field} {first['msg']}")
                continue
            if self.repo.get_by_word(data.word):
                errors.append(f"Row {index}: Word '{data.word}' already exists")
                continue
            self.create(data)
            imported += 1
        return {
            'message': f"Import completed. {imported} words imported.",
            'imported_count': imported,
            'errors': errors,
        }

    def notification_history(self, date_from: Optional[date] = None, date_to: Optional[date] = None,
                             status: Optional[str] = None, page: int = 1) -> dict:
        stmt = self.repo.notifications_query(date_from, date_to, status)

        def serialize(n: models.DailyVocabularyNotification) -> dict:
            data = n.model_dump()
            word = self.repo.get(n.vocabulary_word_id)
            data['vocabulary_word'] = word_out(word) if word else None
            return data

        return schemas.page_out(repositories.paginate(self.session, stmt, page, 20), serialize)

    def _record(self, word_id: int, interaction_type: str, source: str, notification_id: Optional[int] = None,
                metadata: Optional[dict] = None):
        meta = dict(metadata or {})
        meta.update({'source': source, 'timestamp': models.utcnow().isoformat()})
        return self.repo.upsert_interaction(self.user.id, word_id, interaction_type, notification_id, meta)

    def _is_bookmarked(self, word_id: int) -> bool:
        return self.repo.find_interaction(self.user.id, word_id, 'bookmarked') is not None

    def daily_word(self) -> dict:
        notification = self.repo.notification_for(models.utcnow().date(), status='sent')
        if not notification:
            return {'message': 'No daily word available today', 'word': None}
        word = self.get(notification.vocabulary_word_id)
        interaction = self._record(word.id, 'viewed', 'daily_word_api', notification.id)
        return {
            'word': word_out(word),
            'notification_date': notification.notification_date,
            'is_bookmarked': self._is_bookmarked(word.id),
            'user_interaction': interaction.model_dump(),
        }

    def history(self, interaction_type: Optional[str] = None, date_from: Optional[datetime] = None,
                date_to: Optional[datetime] = None, page: int = 1) -> dict:
        stmt = self.repo.interactions_query(self.user.id, interaction_type, date_from, date_to)

        def serialize(row: models.UserVocabularyInteraction) -> dict:
            data = row.model_dump()
            word = self.repo.get(row.vocabulary_word_id)
            data['vocabulary_word'] = word_out(word) if word else None
            return data

        return schemas.page_out(repositories.paginate(self.session, stmt, page, 20), serialize)

    def show(self, word_id: int) -> dict:
        word = self.get(word_id)
        if not word.is_active:
            raise NotFoundError("Vocabulary word not found")
        self._record(word.id, 'viewed', 'word_detail_view')
        interactions = self.session.exec(self.repo.interactions_query(self.user.id)).all()
        return {
            'word': word_out(word),
            'is_bookmarked': self._is_bookmarked(word.id),
            'interactions': [i.model_dump() for i in interactions if i.vocabulary_word_id == word.id],
        }

    def record_interaction(self, word_id: int, interaction_type: str, metadata: Optional[dict] = None):
        word = self.get(word_id)
        return self._record(word.id, interaction_type, metadata.get('source', 'api') if metadata else 'api',
                            metadata=metadata)

    def bookmark(self, word_id: int):
        word = self.get(word_id)
        return self._record(word.id, 'bookmarked', 'bookmark_action')

    def remove_bookmark(self, word_id: int) -> None:
        word = self.get(word_id)
        row = self.repo.find_interaction(self.user.id, word.id, 'bookmarked')
        if row is None:
            raise NotFoundError("Bookmark not found")
        self.repo.delete(row)


class NotificationService:
    """Device registration, preferences and per-device delivery."""
    def __init__(self, session: Session, sender: Optional[PushSender] = None):
        self.session = session
        self.repo = repositories.DeviceRepository(session)
        self.vocab_repo = repositories.VocabularyRepository(session)
        self._sender = sender
        self._owns_sender = sender is None

    @property
    def sender(self) -> PushSender:
        if self._sender is None:
            self._sender = PushSender(settings.FCM_SERVER_KEY, settings.VOCAB_RETRY_ATTEMPTS)
        return self._sender

    def close(self) -> None:
        if self._owns_sender and self._sender is not None:
            self._sender.close()
            self._sender = None

    def register_device(self, user: models.User, data: schemas.DeviceIn) -> models.NotificationDevice:
        if data.device_type in ('web', 'pwa') and not (data.subscription_data or {}).get('endpoint'):
            raise ValueError("Web push devices require subscription data with an endpoint")
        device = self.repo.find(user.id, data.device_type, data.device_token)
        if device is None:
            device = models.NotificationDevice(user_id=user.id, device_type=data.device_type,
                                               device_token=data.device_token)
        device.browser_type = data.browser_type
        device.platform = data.platform
        device.subscription_data = data.subscription_data
        device.is_active = True
        device.last_used_at = models.utcnow()
        return self.repo.save(device)

    def unregister_device(self, user: models.User, device_type: str, device_token: str) -> None:
        device = self.repo.find(user.id, device_type, device_token)
        if device is None:
            raise NotFoundError("Device not found")
        device.is_active = False
        self.repo.save(device)

    def preferences(self, user: models.User) -> models.NotificationPreference:
        prefs = self.repo.preferences(user.id)
        if prefs is None:
            prefs = models.NotificationPreference(user_id=user.id)
        return prefs

    def update_preferences(self, user: models.User, data: schemas.PreferencesIn) -> models.NotificationPreference:
        prefs = self.preferences(user)
        for key, value in data.model_dump(exclude_none=True).items():
            setattr(prefs, key, value)
        prefs.updated_at = models.utcnow()
        return self.repo.save(prefs)

    def deliver(self, word: models.VocabularyWord, user: models.User, device: models.NotificationDevice,
                notification_id: Optional[int] = None) -> bool:
        """Push `word` to one device; success marks the device used and logs a view."""
        ok = self.sender.send(device, build_payload(word))
        if not ok:
            return False
        device.last_used_at = models.utcnow()
        self.repo.save(device)
        self.vocab_repo.upsert_interaction(
            user.id, word.id, 'viewed', notification_id,
            {'source': 'daily_notification', 'timestamp': models.utcnow().isoformat()},
        )
        return True

    def deliver_to_user(self, word: models.VocabularyWord, user: models.User,
                        notification_id: Optional[int] = None) -> dict:
        results = {'total': 0, 'successful': 0, 'failed': 0}
        for device in self.repo.active_for_user(user.id):
            results['total'] += 1
            ok = self.deliver(word, user, device, notification_id)
            results['successful' if ok else 'failed'] += 1
        return results

    def send_test(self, word_id: int, admin: models.User) -> dict:
        word = self.vocab_repo.get(word_id)
        if not word:
            raise NotFoundError("Vocabulary word not found")
        results = self.deliver_to_user(word, admin)
        return {'message': 'Test notification sent', **results}


class DailyVocabularySender:
    """Pick today's word and broadcast it to every reachable student."""
    def __init__(self, session: Session, sender: Optional[PushSender] = None):
        self.session = session
        self.vocab_repo = repositories.VocabularyRepository(session)
        self.device_repo = repositories.DeviceRepository(session)
        self.notifications = NotificationService(session, sender)

    def already_sent_today(self, today: date) -> bool:
        return self.vocab_repo.notification_for(today, status='sent') is not None

    def pick_word(self, word_id: Optional[int] = None, today: Optional[date] = None) -> Optional[models.VocabularyWord]:
        """Explicit word, else the best candidate not sent within the exclusion window."""
        if word_id is not None:
            word = self.vocab_repo.get(word_id)
            if not word:
                raise NotFoundError(f"Vocabulary word {word_id} not found")
            return word
        today = today or models.utcnow().date()
        recent = self.vocab_repo.recently_sent_word_ids(today - timedelta(days=settings.VOCAB_EXCLUDE_RECENT_DAYS))
        candidates = self.vocab_repo.candidate_words(recent)
        if not candidates:
            return None
        if settings.VOCAB_SELECTION_STRATEGY == 'random':
            return random.choice(candidates)
        return candidates[0]

    def recipients(self) -> List[models.User]:
        out = []
        for user in self.device_repo.students_with_active_devices():
            prefs = self.device_repo.preferences(user.id)
            if prefs is not None and not prefs.daily_vocabulary:
                continue
            out.append(user)
        return out

    def run(self, force: bool = False, word_id: Optional[int] = None, dry_run: bool = False) -> dict:
        """Return a result dict whose `status` is one of
        skipped, disabled, no_word, dry_run, failed or sent."""
        today = models.utcnow().date()
        if not force and not settings.VOCAB_NOTIFICATIONS_ENABLED:
            return {'status': 'disabled'}
        if not force and self.already_sent_today(today):
            return {'status': 'skipped'}
        word = self.pick_word(word_id, today)
        if word is None:
            return {'status': 'no_word'}
        if dry_run:
            return {'status': 'dry_run', 'word': word_out(word)}
        notification = self.vocab_repo.save(models.DailyVocabularyNotification(
            vocabulary_word_id=word.id,
            notification_date=today,
            status='pending',
            target_audience=['students'],
        ))
        students = self.recipients()
        if not students:
            notification.mark_as_failed('No active students found')
            self.vocab_repo.save(notification)
            logger.warning("daily vocabulary %s: no active students found", word.word)
            return {'status': 'failed', 'word': word_out(word), 'notification': notification.model_dump()}
        totals = {'total': 0, 'successful': 0, 'failed': 0}
        for student in students:
            result = self.notifications.deliver_to_user(word, student, notification.id)
            for key in totals:
                totals[key] += result[key]
        notification.mark_as_sent(totals['total'], totals['successful'], totals['failed'])
        self.vocab_repo.save(notification)
        logger.info("daily vocabulary %s sent: %s", word.word, totals)
        return {'status': 'sent', 'word': word_out(word), 'notification': notification.model_dump(), **totals}

    def close(self) -> None:
        self.notifications.close()
