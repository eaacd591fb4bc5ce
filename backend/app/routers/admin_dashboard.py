"""Admin analytics and file management."""

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlmodel import Session

from .. import models, schemas
from ..auth import require_admin
from ..database import get_session
from ..progress import AdminAnalyticsService
from ..services import get_storage
from ..utils.file_storage import ALLOWED_TYPES, FileValidationError

dashboard_router = APIRouter(prefix="/admin/dashboard", tags=["admin-dashboard"])
files_router = APIRouter(prefix="/admin/files", tags=["admin-files"])

FileType = Literal['audio', 'image', 'document']
_MAX_FILE_BYTES = max(c['max_size'] for c in ALLOWED_TYPES.values())


@dashboard_router.get('')
def overview(db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return AdminAnalyticsService(db).overview()


@dashboard_router.get('/users')
def user_analytics(period: int = Query(30, ge=1, le=365), db: Session = Depends(get_session),
                   admin: models.User = Depends(require_admin)):
    return AdminAnalyticsService(db).user_analytics(period)


@dashboard_router.get('/content')
def content_analytics(period: int = Query(30, ge=1, le=365), db: Session = Depends(get_session),
                      admin: models.User = Depends(require_admin)):
    return AdminAnalyticsService(db).content_analytics(period)


@dashboard_router.get('/performance')
def performance(period: int = Query(7, ge=1, le=365), db: Session = Depends(get_session),
                admin: models.User = Depends(require_admin)):
    return AdminAnalyticsService(db).performance(period)


# -- files -------------------------------------------------------------------

def _check_upload_path(path: str) -> None:
    try:
        inside = get_storage().is_within(path, 'uploads')
    except FileValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not inside:
        raise HTTPException(status_code=403, detail='Access denied')


@files_router.get('')
def list_files(type: Optional[FileType] = None, admin: models.User = Depends(require_admin)):
    storage = get_storage()
    directory = f"uploads/{type}" if type else 'uploads'
    return {'files': storage.list_files(directory), 'storage_stats': storage.storage_stats()}


@files_router.post('/upload', status_code=201)
def upload(
    files: List[UploadFile] = File(...),
    type: FileType = Form(...),
    directory: Optional[str] = Form(default=None),
    admin: models.User = Depends(require_admin),
):
    """Valid files are stored; rejected ones are listed in `errors`."""
    storage = get_storage()
    uploaded = []
    errors = []
    for f in files:
        content = f.file.read(_MAX_FILE_BYTES + 1)
        try:
            uploaded.append(storage.upload(f.filename or '', content, type, directory, f.content_type))
        except FileValidationError as e:
            errors.append({'file': f.filename, 'error': str(e)})
    if not uploaded and errors:
        raise HTTPException(status_code=400, detail={'message': 'No files were uploaded', 'errors': errors})
    return {'message': f'{len(uploaded)} files uploaded successfully', 'files': uploaded, 'errors': errors}


@files_router.delete('/delete')
def delete_file(payload: schemas.FileDeleteIn, admin: models.User = Depends(require_admin)):
    _check_upload_path(payload.path)
    try:
        deleted = get_storage().delete(payload.path)
    except FileValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail='File not found')
    return {'message': 'File deleted successfully'}


@files_router.delete('/delete-multiple')
def delete_multiple(payload: schemas.FileDeleteMultipleIn, admin: models.User = Depends(require_admin)):
    for path in payload.paths:
        _check_upload_path(path)
    try:
        results = get_storage().delete_multiple(payload.paths)
    except FileValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    deleted = sum(1 for ok in results.values() if ok)
    return {'message': f'Deleted {deleted} of {len(results)} files', 'results': results}


@files_router.get('/info')
def file_info(path: str, admin: models.User = Depends(require_admin)):
    _check_upload_path(path)
    try:
        info = get_storage().info(path)
    except FileValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if info is None:
        raise HTTPException(status_code=404, detail='File not found')
    return {'file': info}


@files_router.post('/cleanup')
def cleanup(payload: schemas.CleanupIn, admin: models.User = Depends(require_admin)):
    deleted = get_storage().cleanup(payload.days_old)
    return {
        'message': f'Cleanup completed. {len(deleted)} files deleted.',
        'deleted_files': deleted,
        'deleted_count': len(deleted),
    }
