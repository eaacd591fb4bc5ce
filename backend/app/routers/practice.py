"""Student reading and listening practice.

Both modules share the same flow (list, start, submit, history,
results), so one router is built per module by `practice_router`.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, schemas
from ..auth import require_student
from ..database import get_session
from ..errors import to_http
from ..services import PracticeService


def practice_router(module: str) -> APIRouter:
    router = APIRouter(prefix=f"/student/{module}", tags=[module])

    @router.get('')
    def index(difficulty: Optional[schemas.Difficulty] = None, db: Session = Depends(get_session),
              user: models.User = Depends(require_student)):
        return {'data': PracticeService(db, user, module).index(difficulty)}

    @router.get('/history')
    def history(page: int = 1, db: Session = Depends(get_session), user: models.User = Depends(require_student)):
        return PracticeService(db, user, module).history(page)

    @router.post('/{content_id}/start')
    def start(content_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_student)):
        try:
            return PracticeService(db, user, module).start(content_id)
        except ValueError as e:
            raise to_http(e)

    @router.post('/attempts/{attempt_id}/submit')
    def submit(attempt_id: int, payload: schemas.ObjectiveSubmitIn, db: Session = Depends(get_session),
               user: models.User = Depends(require_student)):
        try:
            return PracticeService(db, user, module).submit(attempt_id, payload.answers, payload.time_spent)
        except ValueError as e:
            raise to_http(e)

    @router.get('/attempts/{attempt_id}/results')
    def results(attempt_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_student)):
        try:
            return PracticeService(db, user, module).results(attempt_id)
        except ValueError as e:
            raise to_http(e)

    return router


reading_router = practice_router('reading')
listening_router = practice_router('listening')
