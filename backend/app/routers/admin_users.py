"""Admin management of students and their band levels."""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, schemas
from ..auth import require_admin
from ..database import get_session
from ..errors import to_http
from ..services import UserAdminService

router = APIRouter(prefix="/admin", tags=["admin-users"])


@router.get('/students')
def list_students(band_level: Optional[schemas.BandLevel] = None, school_name: Optional[str] = None,
                  is_active: Optional[bool] = None, search: Optional[str] = None, page: int = 1,
                  per_page: int = 15, db: Session = Depends(get_session),
                  admin: models.User = Depends(require_admin)):
    page_data = UserAdminService(db).list_students(band_level, school_name, is_active, search, page, per_page)
    return schemas.page_out(page_data, schemas.user_out)


@router.post('/students', status_code=201)
def create_student(payload: schemas.StudentCreateIn, db: Session = Depends(get_session),
                   admin: models.User = Depends(require_admin)):
    try:
        user = UserAdminService(db).create_student(payload)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Student created successfully', 'student': schemas.user_out(user)}


@router.get('/students/dashboard-stats')
def dashboard_stats(db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return UserAdminService(db).dashboard_stats()


@router.post('/students/bulk-update-band')
def bulk_update_band(payload: schemas.BulkBandIn, db: Session = Depends(get_session),
                     admin: models.User = Depends(require_admin)):
    updated = UserAdminService(db).bulk_update_band(payload.student_ids, payload.band_level)
    return {'message': f'Band level updated for {updated} students', 'updated_count': updated}


@router.get('/students/{user_id}')
def show_student(user_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    try:
        return {'student': schemas.user_out(UserAdminService(db).get_student(user_id))}
    except ValueError as e:
        raise to_http(e)


@router.put('/students/{user_id}')
def update_student(user_id: int, payload: schemas.StudentUpdateIn, db: Session = Depends(get_session),
                   admin: models.User = Depends(require_admin)):
    try:
        user = UserAdminService(db).update_student(user_id, payload)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Student updated successfully', 'student': schemas.user_out(user)}


@router.put('/students/{user_id}/password')
def update_password(user_id: int, payload: schemas.PasswordUpdateIn, db: Session = Depends(get_session),
                    admin: models.User = Depends(require_admin)):
    try:
        UserAdminService(db).update_password(user_id, payload)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Password updated successfully'}


@router.post('/students/{user_id}/toggle-status')
def toggle_student_status(user_id: int, db: Session = Depends(get_session),
                          admin: models.User = Depends(require_admin)):
    try:
        user = UserAdminService(db).toggle_status(user_id)
    except ValueError as e:
        raise to_http(e)
    state = 'activated' if user.is_active else 'deactivated'
    return {'message': f'Student {state} successfully', 'student': schemas.user_out(user)}


@router.delete('/students/{user_id}')
def delete_student(user_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    try:
        UserAdminService(db).delete_student(user_id)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Student deleted successfully'}


@router.get('/students/{user_id}/statistics')
def student_statistics(user_id: int, db: Session = Depends(get_session),
                       admin: models.User = Depends(require_admin)):
    try:
        return UserAdminService(db).student_statistics(user_id)
    except ValueError as e:
        raise to_http(e)


# -- band levels -------------------------------------------------------------

@router.post('/band-levels/assign')
def assign_band(payload: schemas.BandAssignIn, db: Session = Depends(get_session),
                admin: models.User = Depends(require_admin)):
    try:
        user = UserAdminService(db).assign_band(payload.user_id, payload.band_level, payload.school_name)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Band level assigned successfully', 'user': schemas.user_out(user)}


@router.get('/band-levels/students')
def students_by_band(band_level: Optional[schemas.BandLevel] = None, school_name: Optional[str] = None,
                     db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    students = UserAdminService(db).students_by_band(band_level, school_name)
    return {'students': [schemas.user_out(u) for u in students]}


@router.get('/band-levels/stats')
def band_stats(db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return UserAdminService(db).band_stats()


@router.put('/band-levels/users/{user_id}')
def update_band(user_id: int, payload: schemas.BandUpdateIn, db: Session = Depends(get_session),
                admin: models.User = Depends(require_admin)):
    try:
        user = UserAdminService(db).assign_band(user_id, payload.band_level, payload.school_name)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Band level updated successfully', 'user': schemas.user_out(user)}


@router.post('/band-levels/users/{user_id}/toggle-status')
def toggle_status(user_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    try:
        user = UserAdminService(db).toggle_status(user_id)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'User status updated successfully', 'user': schemas.user_out(user)}
