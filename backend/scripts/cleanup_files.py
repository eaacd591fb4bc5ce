"""Delete uploaded files older than N days.
Usage: python scripts/cleanup_files.py [--days 30]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `app` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from app.services import get_storage


def main(days: int = 30):
    deleted = get_storage().cleanup(days)
    for path in deleted:
        print(f'Deleted {path}')
    print(f'Cleanup completed. {len(deleted)} files deleted.')
    return deleted


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--days', type=int, default=30, help='Delete uploads older than this many days (1-365)')
    args = parser.parse_args()
    if not 1 <= args.days <= 365:
        parser.error('--days must be between 1 and 365')
    main(args.days)
