"""Progress tracking, leaderboards, attempt review and admin analytics.

Aggregates are computed in Python over completed attempts fetched through
the repositories. Scores are compared as attempt percentages so reading
raw points and writing scores out of 100 rank on the same scale.
"""

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlmodel import Session

from . import models, repositories, schemas
from .errors import NotFoundError, PermissionDeniedError
from .utils.evaluation import band_for_module, round_to_half

MODULE_ICONS = {'reading': '📖', 'writing': '✍️', 'listening': '🎧', 'speaking': '🎤'}
ACTIVITY_TITLES = {
    'reading': 'Reading Practice',
    'writing': 'Writing Task',
    'listening': 'Listening Exercise',
    'speaking': 'Speaking Practice',
}


def _avg(values) -> float:
    values = list(values)
    return round(sum(values) / len(values), 2) if values else 0.0


def _day(value: Optional[datetime]) -> Optional[date]:
    return value.date() if value else None


def streak_days(days, today: Optional[date] = None) -> int:
    """Consecutive active days counted back from today."""
    today = today or models.utcnow().date()
    active = set(d for d in days if d)
    streak = 0
    current = today
    while current in active:
        streak += 1
        current -= timedelta(days=1)
    return streak


def improvement_rate(scores: List[float]) -> float:
    """Change from the first to the last score in percent."""
    if len(scores) < 2:
        return 0
    first, last = scores[0], scores[-1]
    if first == 0:
        return 100 if last > 0 else 0
    return round((last - first) / first * 100, 2)


def _content_title(session: Session, attempt: models.Attempt) -> str:
    model = models.CONTENT_MODELS.get(attempt.module_type, (None,))[0]
    item = session.get(model, attempt.content_id) if model else None
    return item.title if item else 'Unknown'


class ProgressService:
    """Per-student statistics, trends and achievements."""
    def __init__(self, session: Session, user: models.User):
        self.session = session
        self.user = user
        self.attempt_repo = repositories.AttemptRepository(session)
        self.submission_repo = repositories.SubmissionRepository(session)

    def _attempts(self, module: Optional[str] = None, since: Optional[datetime] = None) -> List[models.Attempt]:
        return self.attempt_repo.completed(self.user.id, module, since)

    def overall_stats(self) -> dict:
        attempts = self._attempts()
        submissions = self.submission_repo.list(user_id=self.user.id)
        return {
            'total_attempts': len(attempts),
            'total_submissions': len(submissions),
            'total_time_spent': sum(a.time_spent or 0 for a in attempts),
            'average_score': _avg(a.percentage for a in attempts),
            'best_score': round(max((a.percentage for a in attempts), default=0.0), 2),
            'streak_days': streak_days(_day(a.completed_at) for a in attempts),
            'modules_practiced': len({a.module_type for a in attempts}),
        }

    def module_breakdown(self) -> Dict[str, dict]:
        out = {}
        for module in models.MODULE_TYPES:
            attempts = self._attempts(module)
            chronological = sorted(attempts, key=lambda a: (a.completed_at, a.id))
            submissions = self.submission_repo.list(user_id=self.user.id, submission_type=module) \
                if module in ('writing', 'speaking') else []
            out[module] = {
                'attempts_count': len(attempts),
                'submissions_count': len(submissions),
                'average_score': _avg(a.percentage for a in attempts),
                'best_score': round(max((a.percentage for a in attempts), default=0.0), 2),
                'total_time_spent': sum(a.time_spent or 0 for a in attempts),
                'improvement_rate': improvement_rate([a.percentage for a in chronological]),
            }
        return out

    def recent_activity(self, limit: int = 10) -> List[dict]:
        items = []
        for a in self._attempts()[:limit]:
            items.append({
                'type': 'attempt',
                'id': a.id,
                'module': a.module_type,
                'title': ACTIVITY_TITLES.get(a.module_type, a.module_type),
                'score': a.score,
                'max_score': a.max_score,
                'percentage': a.percentage,
                'date': a.completed_at,
                'content_title': _content_title(self.session, a),
            })
        for s in self.submission_repo.list(user_id=self.user.id)[:limit]:
            model = models.WritingTask if s.submission_type == 'writing' else models.SpeakingPrompt
            task = self.session.get(model, s.task_id)
            items.append({
                'type': 'submission',
                'id': s.id,
                'module': s.submission_type,
                'score': s.score,
                'date': s.submitted_at,
                'content_title': task.title if task else 'Unknown',
            })
        items.sort(key=lambda i: i['date'], reverse=True)
        return items[:limit]

    def performance_trends(self, days: int = 30, module: Optional[str] = None) -> List[dict]:
        since = models.utcnow() - timedelta(days=days)
        grouped = defaultdict(list)
        for a in self._attempts(module, since):
            grouped[a.completed_at.date()].append(a)
        return [
            {
                'date': day.isoformat(),
                'attempts_count': len(rows),
                'average_score': _avg(a.percentage for a in rows),
                'total_time': sum(a.time_spent or 0 for a in rows),
            }
            for day, rows in sorted(grouped.items())
        ]

    def achievements(self) -> List[dict]:
        attempts = self._attempts()
        if not attempts:
            return []
        earned = []
        first = min(attempts, key=lambda a: a.completed_at)
        earned.append({'title': 'First Steps', 'description': 'Completed your first practice session',
                       'earned_at': first.completed_at, 'icon': '🎯'})
        for module in models.MODULE_TYPES:
            rows = [a for a in attempts if a.module_type == module]
            if len(rows) >= 5:
                earned.append({
                    'title': f'{module.capitalize()} Enthusiast',
                    'description': f'Completed 5+ {module} practice sessions',
                    'earned_at': max(a.completed_at for a in rows),
                    'icon': MODULE_ICONS[module],
                })
        best = max(attempts, key=lambda a: a.percentage)
        if best.percentage >= 90:
            earned.append({'title': 'Excellence', 'description': 'Achieved a score of 90% or higher',
                           'earned_at': best.completed_at, 'icon': '🏆'})
        if streak_days(_day(a.completed_at) for a in attempts) >= 7:
            earned.append({'title': 'Consistent Learner', 'description': 'Practiced for 7 consecutive days',
                           'earned_at': models.utcnow(), 'icon': '🔥'})
        return earned

    def progress(self) -> dict:
        return {
            'overall_stats': self.overall_stats(),
            'module_breakdown': self.module_breakdown(),
            'recent_activity': self.recent_activity(),
            'performance_trends': self.performance_trends(),
            'achievements': self.achievements(),
        }

    def quick_stats(self) -> dict:
        overall = self.overall_stats()
        breakdown = self.module_breakdown()
        best = max(breakdown, key=lambda m: breakdown[m]['average_score'])
        most = max(breakdown, key=lambda m: breakdown[m]['attempts_count'])
        return {
            'total_practice_time': overall['total_time_spent'],
            'current_streak': overall['streak_days'],
            'best_module': {'name': best, 'score': breakdown[best]['average_score']},
            'most_practiced_module': {'name': most, 'attempts': breakdown[most]['attempts_count']},
            'recent_improvement': self.recent_improvement(),
        }

    def recent_improvement(self) -> float:
        """Last five attempts against the five before them, in percent."""
        recent = [a.percentage for a in self._attempts()[:10]]
        if len(recent) < 5:
            return 0
        newer = _avg(recent[:5])
        older = _avg(recent[5:])
        if older == 0:
            return 100 if newer > 0 else 0
        return round((newer - older) / older * 100, 2)

    def module_progress(self, module: str, page: int = 1) -> dict:
        if module not in models.MODULE_TYPES:
            raise NotFoundError(f"Unknown module: {module}")
        stmt = self.attempt_repo.completed_query(self.user.id, module)
        return {
            'attempts': schemas.page_out(repositories.paginate(self.session, stmt, page, 20), schemas.attempt_out),
            'stats': self.module_breakdown()[module],
        }

    def chart_data(self, module: str = 'overall', days: int = 30) -> List[dict]:
        trends = self.performance_trends(days, None if module == 'overall' else module)
        return [{'date': t['date'], 'score': t['average_score'], 'attempts': t['attempts_count']} for t in trends]


def start_of_week(now: Optional[datetime] = None) -> datetime:
    now = now or models.utcnow()
    monday = now.date() - timedelta(days=now.weekday())
    return datetime(monday.year, monday.month, monday.day)


class LeaderboardService:
    """Student rankings by average attempt percentage."""
    def __init__(self, session: Session):
        self.session = session
        self.attempt_repo = repositories.AttemptRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def _rows(self, since: Optional[datetime] = None, module: Optional[str] = None) -> List[dict]:
        """Per-student aggregates sorted by average desc, then attempts desc."""
        grouped = defaultdict(list)
        for a in self.attempt_repo.completed(module_type=module, since=since):
            grouped[a.user_id].append(a)
        users = {u.id: u for u in self.user_repo.list_by_ids(grouped) if u.role == 'student'}
        rows = []
        for user_id, attempts in grouped.items():
            user = users.get(user_id)
            if not user:
                continue
            rows.append({
                'user_id': user.id,
                'name': user.name,
                'total_attempts': len(attempts),
                'average_score': _avg(a.percentage for a in attempts),
                'best_score': round(max(a.percentage for a in attempts), 2),
                'total_time_spent': sum(a.time_spent or 0 for a in attempts),
                'modules_completed': len({a.module_type for a in attempts}),
            })
        rows.sort(key=lambda r: (-r['average_score'], -r['total_attempts'], r['user_id']))
        return rows

    @staticmethod
    def _ranked(rows: List[dict], limit: int) -> List[dict]:
        return [{'rank': i, **row} for i, row in enumerate(rows[:limit], start=1)]

    def overall(self, limit: int = 10) -> List[dict]:
        return self._ranked(self._rows(models.utcnow() - timedelta(days=30)), limit)

    def module(self, module: str, limit: int = 10) -> List[dict]:
        return self._ranked(self._rows(models.utcnow() - timedelta(days=30), module), limit)

    def weekly(self, limit: int = 10) -> List[dict]:
        out = []
        for row in self._ranked(self._rows(start_of_week()), limit):
            out.append({
                'rank': row['rank'],
                'user_id': row['user_id'],
                'name': row['name'],
                'weekly_attempts': row['total_attempts'],
                'weekly_average_score': row['average_score'],
                'weekly_best_score': row['best_score'],
                'weekly_time_spent': row['total_time_spent'],
            })
        return out

    def position(self, user_id: int, board: str = 'overall', module: Optional[str] = None) -> Optional[int]:
        """1 + the number of students ranked strictly ahead; None without attempts."""
        if board == 'weekly':
            rows = self._rows(start_of_week())
        else:
            rows = self._rows(models.utcnow() - timedelta(days=30), module if board == 'module' else None)
        mine = next((r for r in rows if r['user_id'] == user_id), None)
        if mine is None:
            return None
        better = sum(
            1 for r in rows
            if r['user_id'] != user_id and (
                r['average_score'] > mine['average_score']
                or (r['average_score'] == mine['average_score'] and r['total_attempts'] > mine['total_attempts'])
            )
        )
        return better + 1

    def leaderboard(self, board: str = 'overall', module: Optional[str] = None, limit: int = 10) -> List[dict]:
        if board == 'weekly':
            return self.weekly(limit)
        if board == 'module':
            if not module:
                raise ValueError('Module parameter required for module leaderboard')
            return self.module(module, limit)
        return self.overall(limit)

    @staticmethod
    def period_start(period: str) -> Optional[datetime]:
        now = models.utcnow()
        if period == 'week':
            return start_of_week(now)
        if period == 'month':
            return datetime(now.year, now.month, 1)
        if period == 'all':
            return None
        raise ValueError("period must be one of week, month, all")

    def progress_leaderboard(self, user_id: int, module: str = 'overall', period: str = 'week',
                             page: int = 1, per_page: int = 20) -> dict:
        rows = self._rows(self.period_start(period), None if module == 'overall' else module)
        page = max(1, page)
        offset = (page - 1) * per_page
        chunk = rows[offset:offset + per_page + 1]
        has_more = len(chunk) > per_page
        data = [
            {'id': r['user_id'], 'name': r['name'], 'score': round(r['average_score'], 1),
             'attempts': r['total_attempts'], 'modules_completed': r['modules_completed']}
            for r in chunk[:per_page]
        ]
        user_rank = None
        for index, r in enumerate(rows):
            if r['user_id'] == user_id:
                user_rank = {'position': index + 1, 'total': len(rows), 'score': round(r['average_score'], 1)}
                break
        return {'data': data, 'user_rank': user_rank, 'has_more': has_more}


REVIEW_SUGGESTIONS = {
    'reading': {
        'immediate': ['Practice skimming and scanning techniques', 'Focus on understanding question types',
                      'Improve time management - aim for 20 minutes per passage'],
        'short_term': ['Read academic articles daily', 'Build vocabulary with context',
                       'Practice identifying main ideas vs details'],
        'long_term': ['Develop critical thinking skills', 'Master all IELTS reading question types',
                      'Achieve consistent 8+ band scores'],
    },
    'listening': {
        'immediate': ['Practice note-taking while listening', 'Focus on key information identification',
                      'Improve spelling of common words'],
        'short_term': ['Listen to English podcasts daily', 'Practice with different accents',
                       'Work on number and date recognition'],
        'long_term': ['Develop prediction skills', 'Master all listening question formats',
                      'Achieve native-level comprehension'],
    },
    'writing': {
        'immediate': ['Plan your essay structure before writing', 'Practice writing within time limits',
                      'Focus on clear topic sentences'],
        'short_term': ['Build academic vocabulary', 'Practice different essay types', 'Improve grammar accuracy'],
        'long_term': ['Develop sophisticated argumentation', 'Master complex sentence structures',
                      'Achieve band 8+ writing consistently'],
    },
    'speaking': {
        'immediate': ['Practice speaking for 2 minutes without stopping', 'Record yourself and listen back',
                      'Focus on clear pronunciation'],
        'short_term': ['Engage in daily English conversations', 'Practice describing pictures and situations',
                       'Work on fluency and natural rhythm'],
        'long_term': ['Develop natural conversation skills', 'Master complex topic discussions',
                      'Achieve native-like fluency'],
    },
}

PRACTICE_SCHEDULES = {
    'reading': 'One timed passage a day, full test every weekend',
    'listening': 'Two recordings a day with note-taking',
    'writing': 'One Task 1 and one Task 2 essay per week',
    'speaking': 'Ten minutes of recorded speaking every day',
}


class AttemptReviewService:
    """Per-attempt breakdown with module-specific guidance."""
    def __init__(self, session: Session, user: models.User):
        self.session = session
        self.user = user
        self.attempt_repo = repositories.AttemptRepository(session)

    def review(self, attempt_id: int) -> dict:
        attempt = self.attempt_repo.get(attempt_id)
        if not attempt:
            raise NotFoundError("Attempt not found")
        if attempt.user_id != self.user.id:
            raise PermissionDeniedError("Unauthorized")
        answers = self.attempt_repo.answers_for(attempt.id)
        correct = sum(1 for a in answers if a.is_correct)
        total = len(answers)
        if total:
            accuracy = round(correct / total * 100, 2)
            band = band_for_module(attempt.module_type, correct, total)
        else:
            accuracy = attempt.percentage
            band = attempt.band_score or 0.0
        return {
            'attempt': schemas.attempt_out(attempt),
            'content_title': _content_title(self.session, attempt),
            'summary': {
                'accuracy': accuracy,
                'band_score': band,
                'time_spent': attempt.time_spent or 0,
                'questions_correct': correct,
                'questions_total': total,
            },
            'answers': [a.model_dump() for a in answers],
            'feedback': attempt.evaluation_details,
            'improvement_suggestions': REVIEW_SUGGESTIONS.get(attempt.module_type, {}),
            'band_specific_tips': {
                'current_estimated_band': band,
                'target_band': min(9.0, round_to_half(band + 0.5)),
            },
            'next_steps': {
                'practice_schedule': PRACTICE_SCHEDULES.get(attempt.module_type),
                'milestone_goal': f"Reach {min(100, int(accuracy) + 10)}% accuracy on your next "
                                  f"{attempt.module_type} attempt",
            },
        }


class AdminAnalyticsService:
    """Aggregates for the admin dashboard."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.attempt_repo = repositories.AttemptRepository(session)
        self.submission_repo = repositories.SubmissionRepository(session)

    def _content_repos(self):
        return {
            m: repositories.ContentRepository(self.session, model) for m, (model, _) in models.CONTENT_MODELS.items()
        }

    def _student_ids(self) -> set:
        return {u.id for u in self.session.exec(self.user_repo.students_query()).all()}

    def overview_stats(self) -> dict:
        week_ago = models.utcnow() - timedelta(days=7)
        repos = self._content_repos()
        return {
            'total_students': self.user_repo.count(role='student'),
            'total_admins': self.user_repo.count(role='admin'),
            'total_attempts': len(self.attempt_repo.completed()),
            'total_submissions': self.submission_repo.count(),
            'content_counts': {
                'reading_passages': repos['reading'].count(),
                'writing_tasks': repos['writing'].count(),
                'listening_exercises': repos['listening'].count(),
                'speaking_prompts': repos['speaking'].count(),
            },
            'recent_activity': {
                'attempts_last_7_days': len(self.attempt_repo.completed(since=week_ago)),
                'submissions_last_7_days': self.submission_repo.count(since=week_ago),
                'new_students_last_7_days': self.user_repo.count(role='student', since=week_ago),
            },
        }

    def active_students(self, days: int) -> int:
        students = self._student_ids()
        since = models.utcnow() - timedelta(days=days)
        return len({a.user_id for a in self.attempt_repo.completed(since=since)} & students)

    def retention_rate(self) -> float:
        cutoff = models.utcnow() - timedelta(days=30)
        older = {u.id for u in self.session.exec(self.user_repo.students_query()).all() if u.created_at <= cutoff}
        if not older:
            return 0
        active = {a.user_id for a in self.attempt_repo.completed(since=cutoff)}
        return round(len(older & active) / len(older) * 100, 2)

    def user_analytics_summary(self) -> dict:
        since = models.utcnow() - timedelta(days=30)
        return {
            'active_users_30_days': self.active_students(30),
            'average_score_30_days': _avg(a.percentage for a in self.attempt_repo.completed(since=since)),
            'user_retention_rate': self.retention_rate(),
        }

    def module_usage(self, days: Optional[int] = None) -> Dict[str, int]:
        since = models.utcnow() - timedelta(days=days) if days else None
        usage = {m: 0 for m in models.MODULE_TYPES}
        for a in self.attempt_repo.completed(since=since):
            usage[a.module_type] = usage.get(a.module_type, 0) + 1
        return dict(sorted(usage.items(), key=lambda kv: -kv[1]))

    def content_analytics_summary(self) -> dict:
        usage = self.module_usage()
        since = models.utcnow() - timedelta(days=30)
        return {
            'module_usage': usage,
            'most_popular_module': next(iter(usage)) if any(usage.values()) else None,
            'content_creation_rate': sum(repo.count(since) for repo in self._content_repos().values()),
        }

    def recent_activity(self, limit: int = 20) -> List[dict]:
        attempts = self.attempt_repo.completed()[:limit]
        users = {u.id: u for u in self.user_repo.list_by_ids({a.user_id for a in attempts})}
        return [
            {
                'type': 'attempt',
                'user_name': users[a.user_id].name if a.user_id in users else 'Unknown',
                'module': a.module_type,
                'score': a.score,
                'percentage': a.percentage,
                'completed_at': a.completed_at,
                'content_title': _content_title(self.session, a),
            }
            for a in attempts
        ]

    def performance_metrics(self) -> dict:
        since = models.utcnow() - timedelta(days=30)
        started = self.attempt_repo.all_started(since)
        completed = self.attempt_repo.completed(since=since)
        out = {}
        for module in models.MODULE_TYPES:
            done = [a for a in completed if a.module_type == module]
            total = sum(1 for a in started if a.module_type == module)
            out[module] = {
                'total_attempts': len(self.attempt_repo.completed(module_type=module)),
                'average_score': _avg(a.percentage for a in self.attempt_repo.completed(module_type=module)),
                'completion_rate': round(len(done) / total * 100, 2) if total else 0,
            }
        return out

    def overview(self) -> dict:
        return {
            'overview_stats': self.overview_stats(),
            'user_analytics': self.user_analytics_summary(),
            'content_analytics': self.content_analytics_summary(),
            'recent_activity': self.recent_activity(),
            'performance_metrics': self.performance_metrics(),
        }

    def user_analytics(self, days: int = 30) -> dict:
        since = models.utcnow() - timedelta(days=days)
        trend = defaultdict(int)
        for u in self.session.exec(self.user_repo.students_query()).all():
            if u.created_at >= since:
                trend[u.created_at.date()] += 1
        active = self.active_students(days)
        total = self.user_repo.count(role='student')
        recent = self.attempt_repo.completed(since=since)
        top = LeaderboardService(self.session).overall(10)
        emails = {u.id: u.email for u in self.user_repo.list_by_ids(r['user_id'] for r in top)}
        return {
            'user_registration_trends': [
                {'date': d.isoformat(), 'registrations': n} for d, n in sorted(trend.items())
            ],
            'active_users': active,
            'user_engagement': {
                'engagement_rate': round(active / total * 100, 2) if total else 0,
                'avg_attempts_per_user': round(len(recent) / max(active, 1), 2),
            },
            'top_performers': [
                {'name': r['name'], 'email': emails.get(r['user_id']), 'average_score': r['average_score'],
                 'total_attempts': r['total_attempts']}
                for r in top
            ],
        }

    def content_analytics(self, days: int = 30) -> dict:
        since = models.utcnow() - timedelta(days=days)
        grouped = defaultdict(list)
        for a in self.attempt_repo.completed(since=since):
            grouped[(a.module_type, a.content_id)].append(a)
        rows = []
        for (module, content_id), attempts in grouped.items():
            rows.append({
                'module_type': module,
                'content_id': content_id,
                'title': _content_title(self.session, attempts[0]),
                'attempts': len(attempts),
                'average_score': _avg(a.percentage for a in attempts),
            })
        popular = sorted(rows, key=lambda r: (-r['attempts'], r['module_type'], r['content_id']))[:10]
        return {
            'content_usage': self.module_usage(days),
            'popular_content': popular,
            'content_performance': sorted(rows, key=lambda r: (-r['average_score'], r['content_id'])),
        }

    def performance(self, days: int = 7) -> dict:
        since = models.utcnow() - timedelta(days=days)
        attempts = self.attempt_repo.completed(since=since)
        daily = defaultdict(list)
        for a in attempts:
            daily[a.completed_at.date()].append(a)
        buckets = {'0-20': 0, '20-40': 0, '40-60': 0, '60-80': 0, '80-100': 0}
        for a in attempts:
            p = a.percentage
            if p < 20:
                buckets['0-20'] += 1
            elif p < 40:
                buckets['20-40'] += 1
            elif p < 60:
                buckets['40-60'] += 1
            elif p < 80:
                buckets['60-80'] += 1
            else:
                buckets['80-100'] += 1
        return {
            'daily_activity': [
                {'date': d.isoformat(), 'attempts': len(rows), 'average_score': _avg(a.percentage for a in rows)}
                for d, rows in sorted(daily.items())
            ],
            'module_distribution': self.module_usage(days),
            'score_distribution': buckets,
        }
