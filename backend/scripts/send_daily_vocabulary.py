"""Send today's vocabulary word to every student with an active device.

Meant to be run once a day from cron (at VOCAB_SEND_TIME).
Usage: python scripts/send_daily_vocabulary.py [--force] [--word-id ID] [--dry-run]
"""
import sys
import argparse
import logging
import pathlib
from typing import Optional
# Ensure `backend/` is on sys.path so `app` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from app.database import engine, create_db_and_tables
from app.vocabulary import DailyVocabularySender

logger = logging.getLogger("app.scripts.daily_vocabulary")


def main(force: bool = False, word_id: Optional[int] = None, dry_run: bool = False) -> int:
    """Run one daily send and return the process exit code."""
    create_db_and_tables()
    with Session(engine, expire_on_commit=False) as session:
        sender = DailyVocabularySender(session)
        try:
            result = sender.run(force=force, word_id=word_id, dry_run=dry_run)
        finally:
            sender.close()
    status = result['status']
    if status == 'disabled':
        print('Vocabulary notifications are disabled (VOCAB_NOTIFICATIONS_ENABLED=false)')
        return 0
    if status == 'skipped':
        print('Daily vocabulary notification already sent today. Use --force to send again.')
        return 0
    if status == 'no_word':
        print('No vocabulary word available to send')
        return 1
    word = result['word']
    if status == 'dry_run':
        print(f"DRY RUN - would send: {word['word']} - {word['meaning']}")
        return 0
    if status == 'failed':
        print(f"Failed to send {word['word']}: {result['notification']['failure_reason']}")
        return 1
    print(f"Sent {word['word']}: {result['successful']} of {result['total']} deliveries succeeded "
          f"({result['failed']} failed)")
    return 0


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description='Send the daily IELTS vocabulary notification')
    parser.add_argument('--force', action='store_true', help='Send even if a word was already sent today')
    parser.add_argument('--word-id', type=int, help='Send this vocabulary word instead of choosing one')
    parser.add_argument('--dry-run', action='store_true', help='Show the selected word without sending')
    args = parser.parse_args()
    sys.exit(main(force=args.force, word_id=args.word_id, dry_run=args.dry_run))
