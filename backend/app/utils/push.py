"""Push delivery for vocabulary notifications.

Mobile apps are reached through the FCM legacy HTTP endpoint; browsers
and PWAs through the push-service endpoint stored in their subscription.
Delivery failures are logged and reported as `False`, never raised.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

FCM_URL = 'https://fcm.googleapis.com/fcm/send'
NOTIFICATION_TITLE = '📚 Daily IELTS Vocabulary'


def build_payload(word) -> dict:
    return {
        'title': NOTIFICATION_TITLE,
        'body': f"{word.word}: {word.meaning}",
        'data': {
            'type': 'daily_vocabulary',
            'word_id': str(word.id),
            'word': word.word,
            'meaning': word.meaning,
            'example': word.example_sentence or '',
            'pronunciation': word.pronunciation or '',
            'oxford_url': word.oxford_url or '',
            'synonyms': json.dumps(word.synonyms or []),
            'antonyms': json.dumps(word.antonyms or []),
            'url': f"/vocabulary/{word.id}",
        },
    }


class PushSender:
    """Send one notification to one device, with a bounded retry on transient errors."""

    def __init__(self, fcm_server_key: str = '', retry_attempts: int = 1, timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.fcm_server_key = fcm_server_key
        self.retry_attempts = max(1, retry_attempts)
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def send(self, device, payload: dict) -> bool:
        if device.device_type == 'mobile_app':
            return self._send_fcm(device, payload)
        if device.device_type in ('web', 'pwa'):
            return self._send_web_push(device, payload)
        logger.warning("unsupported device type %s for device %s", device.device_type, device.id)
        return False

    def _post(self, url: str, **kwargs) -> Optional[httpx.Response]:
        for attempt in range(1, self.retry_attempts + 1):
            try:
                resp = self._client.post(url, **kwargs)
            except httpx.HTTPError as exc:
                logger.warning("push request to %s failed (attempt %s): %s", url, attempt, exc)
                continue
            if resp.status_code < 500:
                return resp
            logger.warning("push request to %s returned %s (attempt %s)", url, resp.status_code, attempt)
        return None

    def _send_fcm(self, device, payload: dict) -> bool:
        if not device.device_token:
            return False
        if not self.fcm_server_key:
            logger.warning('FCM server key not configured')
            return False
        body = {
            'to': device.device_token,
            'notification': {
                'title': payload['title'],
                'body': payload['body'],
                'icon': 'vocabulary_icon',
                'sound': 'default',
                'click_action': 'FLUTTER_NOTIFICATION_CLICK',
            },
            'data': payload['data'],
        }
        headers = {'Authorization': f'key={self.fcm_server_key}', 'Content-Type': 'application/json'}
        resp = self._post(FCM_URL, json=body, headers=headers)
        return resp is not None and resp.is_success

    def _send_web_push(self, device, payload: dict) -> bool:
        subscription = device.subscription_data or {}
        endpoint = subscription.get('endpoint')
        if not endpoint:
            return False
        # payload-less push; the service worker fetches the word itself
        resp = self._post(endpoint, headers={'TTL': '86400', 'Urgency': 'normal'})
        return resp is not None and resp.is_success

    def close(self):
        self._client.close()
