"""Local file storage for uploaded audio, images and documents.

Files live under `settings.STORAGE_ROOT`; callers only ever see paths
relative to that root (e.g. `uploads/audio/2025/01/...mp3`).
"""

from __future__ import annotations

import secrets
import string
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

ALLOWED_TYPES = {
    'audio': {
        'extensions': ['mp3', 'wav', 'ogg', 'm4a'],
        'max_size': 50 * 1024 * 1024,
        'mime_types': ['audio/mpeg', 'audio/wav', 'audio/x-wav', 'audio/ogg', 'audio/mp4', 'audio/x-m4a'],
    },
    'image': {
        'extensions': ['jpg', 'jpeg', 'png', 'gif', 'webp'],
        'max_size': 10 * 1024 * 1024,
        'mime_types': ['image/jpeg', 'image/png', 'image/gif', 'image/webp'],
    },
    'document': {
        'extensions': ['pdf', 'doc', 'docx', 'txt'],
        'max_size': 20 * 1024 * 1024,
        'mime_types': [
            'application/pdf',
            'application/msword',
            'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
            'text/plain',
        ],
    },
}
DANGEROUS_EXTENSIONS = {'php', 'exe', 'bat', 'sh', 'cmd', 'scr', 'pif', 'jar'}
GENERIC_MIME_TYPES = {None, '', 'application/octet-stream'}


class FileValidationError(ValueError):
    """Raised when an upload fails type, size or content checks."""


def format_bytes(size: float) -> str:
    units = ['B', 'KB', 'MB', 'GB', 'TB']
    i = 0
    while size >= 1024 and i < len(units) - 1:
        size /= 1024
        i += 1
    return f"{round(size, 2)} {units[i]}"


def _extension(filename: str) -> str:
    return filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''


def _random_token(length: int = 8) -> str:
    alphabet = string.ascii_letters + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


class FileStorage:
    """Validate, store, inspect and remove files below a root directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def resolve(self, relative_path: str) -> Path:
        """Map a relative path onto the root, refusing traversal outside it."""
        root = self.root.resolve()
        target = (root / relative_path).resolve()
        if root != target and root not in target.parents:
            raise FileValidationError("invalid file path")
        return target

    def is_within(self, relative_path: str, base: str) -> bool:
        """True when `relative_path` resolves below `base`; traversal outside the root still raises."""
        target = self.resolve(relative_path)
        return (self.root.resolve() / base) in target.parents

    def validate(self, filename: str, content: bytes, file_type: str, content_type: Optional[str] = None,
                 extensions: Optional[List[str]] = None, max_size: Optional[int] = None) -> None:
        """Raise `FileValidationError` unless the upload is acceptable.

        `extensions` and `max_size` override the per-type defaults for
        callers with stricter rules (speaking recordings, listening audio).
        """
        if file_type not in ALLOWED_TYPES:
            raise FileValidationError(f"Invalid file type: {file_type}")
        config = ALLOWED_TYPES[file_type]
        limit = max_size or config['max_size']
        if len(content) > limit:
            raise FileValidationError(f"File size exceeds maximum allowed size of {limit // (1024 * 1024)}MB")
        ext = _extension(filename)
        if ext in DANGEROUS_EXTENSIONS:
            raise FileValidationError("Executable files are not allowed")
        allowed = extensions or config['extensions']
        if ext not in allowed:
            raise FileValidationError(f"Invalid file extension. Allowed extensions: {', '.join(allowed)}")
        if content_type not in GENERIC_MIME_TYPES and not content_type.startswith(file_type) \
                and content_type not in config['mime_types']:
            raise FileValidationError("Invalid file type. File appears to be corrupted or not of the expected type.")
        if b'<?php' in content or b'<?=' in content:
            raise FileValidationError("Files containing PHP code are not allowed")

    def storage_dir(self, file_type: str, directory: Optional[str] = None) -> str:
        base = f"uploads/{file_type}"
        if directory:
            base += f"/{directory.strip('/')}"
        return base + datetime.now().strftime('/%Y/%m')

    def generate_filename(self, original_name: str) -> str:
        stamp = datetime.now().strftime('%Y-%m-%d_%H-%M-%S')
        return f"{stamp}_{_random_token()}.{_extension(original_name)}"

    def save(self, relative_dir: str, filename: str, content: bytes) -> str:
        target = self.resolve(f"{relative_dir}/{filename}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        return f"{relative_dir}/{filename}"

    def upload(self, filename: str, content: bytes, file_type: str, directory: Optional[str] = None,
               content_type: Optional[str] = None) -> dict:
        self.validate(filename, content, file_type, content_type)
        stored_name = self.generate_filename(filename)
        path = self.save(self.storage_dir(file_type, directory), stored_name, content)
        return {
            'filename': stored_name,
            'original_name': filename,
            'path': path,
            'url': f"/storage/{path}",
            'size': len(content),
            'mime_type': content_type,
            'type': file_type,
        }

    def exists(self, relative_path: str) -> bool:
        return self.resolve(relative_path).is_file()

    def delete(self, relative_path: str) -> bool:
        target = self.resolve(relative_path)
        if not target.is_file():
            return False
        target.unlink()
        return True

    def delete_multiple(self, paths: List[str]) -> Dict[str, bool]:
        return {p: self.delete(p) for p in paths}

    def info(self, relative_path: str) -> Optional[dict]:
        target = self.resolve(relative_path)
        if not target.is_file():
            return None
        stat = target.stat()
        return {
            'path': relative_path,
            'url': f"/storage/{relative_path}",
            'size': stat.st_size,
            'size_formatted': format_bytes(stat.st_size),
            'last_modified': int(stat.st_mtime),
            'exists': True,
        }

    def list_files(self, directory: str = 'uploads') -> List[dict]:
        base = self.resolve(directory)
        if not base.is_dir():
            return []
        root = self.root.resolve()
        out = []
        for path in sorted(base.rglob('*')):
            if path.is_file():
                stat = path.stat()
                out.append({
                    'path': path.relative_to(root).as_posix(),
                    'url': f"/storage/{path.relative_to(root).as_posix()}",
                    'size': stat.st_size,
                    'last_modified': int(stat.st_mtime),
                })
        return out

    def storage_stats(self) -> dict:
        files = self.list_files('uploads')
        total = sum(f['size'] for f in files)
        type_stats = {}
        for file_type in ALLOWED_TYPES:
            typed = [f for f in files if f['path'].startswith(f"uploads/{file_type}/")]
            size = sum(f['size'] for f in typed)
            type_stats[file_type] = {'count': len(typed), 'size': size, 'size_formatted': format_bytes(size)}
        return {
            'total_size': total,
            'total_size_formatted': format_bytes(total),
            'file_count': len(files),
            'type_stats': type_stats,
        }

    def cleanup(self, days_old: int = 30) -> List[str]:
        """Delete uploads last modified more than `days_old` days ago."""
        cutoff = time.time() - days_old * 86400
        deleted = []
        for f in self.list_files('uploads'):
            if f['last_modified'] < cutoff and self.delete(f['path']):
                deleted.append(f['path'])
        return deleted
