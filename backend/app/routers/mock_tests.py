"""Mock tests: browsing, admin management and sittings."""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, schemas
from ..auth import get_current_user, require_admin
from ..database import get_session
from ..errors import to_http
from ..services import MockTestService

router = APIRouter(prefix="/mock-tests", tags=["mock-tests"])


@router.get('')
def index(band_level: Optional[schemas.BandLevel] = None, all_bands: bool = False, search: Optional[str] = None,
          db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return {'data': MockTestService(db, user).index(band_level, all_bands, search)}


@router.post('', status_code=201)
def create(payload: schemas.MockTestIn, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    try:
        mock_test = MockTestService(db, admin).create(payload)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Mock test created successfully', 'mock_test': mock_test}


@router.get('/available-content')
def available_content(module_type: Optional[schemas.ModuleType] = None, db: Session = Depends(get_session),
                      admin: models.User = Depends(require_admin)):
    return MockTestService(db, admin).available_content(module_type)


@router.get('/my-attempts')
def my_attempts(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return {'data': MockTestService(db, user).my_attempts()}


@router.post('/attempts/{attempt_id}/submit')
def submit(attempt_id: int, payload: schemas.MockTestSubmitIn, db: Session = Depends(get_session),
           user: models.User = Depends(get_current_user)):
    try:
        result = MockTestService(db, user).submit(attempt_id, payload)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Mock test submitted successfully', **result}


@router.get('/attempts/{attempt_id}/results')
def results(attempt_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    try:
        return {'attempt': MockTestService(db, user).results(attempt_id)}
    except ValueError as e:
        raise to_http(e)


@router.get('/{mock_test_id}')
def show(mock_test_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    try:
        return {'mock_test': MockTestService(db, user).show(mock_test_id)}
    except ValueError as e:
        raise to_http(e)


@router.put('/{mock_test_id}')
def update(mock_test_id: int, payload: schemas.MockTestIn, db: Session = Depends(get_session),
           admin: models.User = Depends(require_admin)):
    try:
        mock_test = MockTestService(db, admin).update(mock_test_id, payload)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Mock test updated successfully', 'mock_test': mock_test}


@router.delete('/{mock_test_id}')
def delete(mock_test_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    try:
        MockTestService(db, admin).delete(mock_test_id)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Mock test deleted successfully'}


@router.post('/{mock_test_id}/start', status_code=201)
def start(mock_test_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    try:
        attempt = MockTestService(db, user).start(mock_test_id)
    except ValueError as e:
        raise to_http(e)
    return {'message': 'Mock test started', 'attempt': attempt.model_dump()}
