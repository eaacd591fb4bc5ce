"""Student dashboard, progress, leaderboards and attempt review."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from .. import models
from ..auth import require_student
from ..database import get_session
from ..errors import to_http
from ..progress import AttemptReviewService, LeaderboardService, ProgressService

router = APIRouter(prefix="/student", tags=["progress"])

Board = Literal['overall', 'module', 'weekly']


@router.get('/dashboard')
def dashboard(db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    svc = ProgressService(db, user)
    boards = LeaderboardService(db)
    return {
        'overall_stats': svc.overall_stats(),
        'module_breakdown': svc.module_breakdown(),
        'recent_activity': svc.recent_activity(),
        'quick_stats': svc.quick_stats(),
        'leaderboard_position': boards.position(user.id),
    }


@router.get('/progress')
def progress(db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    return ProgressService(db, user).progress()


@router.get('/progress/trends')
def trends(days: int = Query(30, ge=1, le=365), module: Optional[str] = None,
           db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    return {'trends': ProgressService(db, user).performance_trends(days, module)}


@router.get('/progress/achievements')
def achievements(db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    return {'achievements': ProgressService(db, user).achievements()}


@router.get('/progress/chart')
def chart(module: str = 'overall', days: int = Query(30, ge=1, le=365),
          db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    return {'data': ProgressService(db, user).chart_data(module, days)}


@router.get('/progress/leaderboard')
def progress_leaderboard(module: str = 'overall', period: Literal['week', 'month', 'all'] = 'week',
                         page: int = 1, db: Session = Depends(get_session),
                         user: models.User = Depends(require_student)):
    return LeaderboardService(db).progress_leaderboard(user.id, module, period, page)


@router.get('/progress/{module}')
def module_progress(module: str, page: int = 1, db: Session = Depends(get_session),
                    user: models.User = Depends(require_student)):
    try:
        return ProgressService(db, user).module_progress(module, page)
    except ValueError as e:
        raise to_http(e)


@router.get('/leaderboard')
def leaderboard(type: Board = 'overall', module: Optional[str] = None, limit: int = Query(10, ge=1, le=100),
                db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    svc = LeaderboardService(db)
    try:
        rows = svc.leaderboard(type, module, limit)
    except ValueError as e:
        raise to_http(e)
    return {
        'leaderboard': rows,
        'type': type,
        'module': module,
        'user_position': svc.position(user.id, type, module),
    }


@router.get('/attempts/{attempt_id}/review')
def review(attempt_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_student)):
    try:
        return AttemptReviewService(db, user).review(attempt_id)
    except ValueError as e:
        raise to_http(e)
