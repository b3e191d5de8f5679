"""
Analytics Aggregation
=====================

Turns the flat list of attempt records (already joined with quiz title and
category) and the profile list into the datasets behind the admin dashboard.
Every chart is an independent reducer over the same input; nothing here talks
to the store or keeps state between calls.
"""

import collections
from datetime import date, datetime, timedelta, tzinfo
from typing import Dict, List, Optional, Sequence

from errors import UpstreamFailure
from schemas import AttemptRecord, ProfileRecord, QuizRecord
from utils import round_half_up

TREND_DAYS = 30
POPULAR_LIMIT = 5
# 60% of a 20-point quiz, applied to every quiz regardless of its real maximum
PASS_THRESHOLD = 12
RADAR_SCALE = 20

SCORE_RANGES = [
    ("0-4", 0, 4),
    ("5-9", 5, 9),
    ("10-14", 10, 14),
    ("15-19", 15, 19),
    ("20", 20, 20),
]

RETENTION_BANDS = ["1 Attempt", "2-5 Attempts", "6+ Attempts"]


def _local(ts: datetime, tz: Optional[tzinfo]) -> datetime:
    return ts.astimezone(tz) if tz is not None else ts


def _trailing_days(now: datetime, tz: Optional[tzinfo], days: int = TREND_DAYS) -> List[date]:
    today = _local(now, tz).date()
    return [today - timedelta(days=days - 1 - i) for i in range(days)]


def _label(d: date) -> str:
    return f"{d.strftime('%b')} {d.day}"


def user_growth(profiles: Sequence[ProfileRecord], now: datetime, tz: Optional[tzinfo] = None) -> List[dict]:
    signups = collections.Counter(_local(p.created_at, tz).date() for p in profiles)
    return [
        {"date": d.isoformat(), "label": _label(d), "users": signups.get(d, 0)}
        for d in _trailing_days(now, tz)
    ]


def traffic_heatmap(attempts: Sequence[AttemptRecord], tz: Optional[tzinfo] = None) -> List[dict]:
    per_hour = collections.Counter(_local(a.completed_at, tz).hour for a in attempts)
    return [{"hour": f"{h}:00", "attempts": per_hour.get(h, 0)} for h in range(24)]


def score_distribution(attempts: Sequence[AttemptRecord]) -> List[dict]:
    # scores outside 0..20 (quizzes worth more than 20 points) land in no bucket
    return [
        {"range": name, "count": sum(1 for a in attempts if low <= a.score <= high)}
        for name, low, high in SCORE_RANGES
    ]


def quiz_popularity(attempts: Sequence[AttemptRecord], limit: int = POPULAR_LIMIT) -> List[dict]:
    counts = collections.Counter(a.quiz_title or "Unknown" for a in attempts)
    # most_common keeps first-seen order between equal counts
    return [{"name": name, "value": value} for name, value in counts.most_common(limit)]


def difficulty_matrix(attempts: Sequence[AttemptRecord]) -> List[dict]:
    stats: Dict[str, dict] = {}
    for a in attempts:
        s = stats.setdefault(a.quiz_title or "Unknown", {"score": 0, "time": 0, "count": 0})
        s["score"] += a.score
        s["time"] += a.time_taken or 0
        s["count"] += 1

    return [
        {
            "name": name,
            "avg_score": round_half_up(s["score"] / s["count"]),
            "avg_time": s["time"] // (s["count"] * 60),   # whole minutes
        }
        for name, s in stats.items()
    ]


def topic_radar(attempts: Sequence[AttemptRecord]) -> List[dict]:
    totals: Dict[str, List[int]] = collections.defaultdict(list)
    for a in attempts:
        totals[a.quiz_category or "General"].append(a.score)

    return [
        {"subject": subject, "score": round_half_up(sum(scores) / len(scores) / RADAR_SCALE * 100)}
        for subject, scores in totals.items()
    ]


def pass_fail_ratio(attempts: Sequence[AttemptRecord], threshold: int = PASS_THRESHOLD) -> List[dict]:
    passed = sum(1 for a in attempts if a.score >= threshold)
    return [
        {"name": "Passed", "value": passed, "fill": "#10B981"},
        {"name": "Failed", "value": len(attempts) - passed, "fill": "#EF4444"},
    ]


def avg_score_trend(attempts: Sequence[AttemptRecord], now: datetime, tz: Optional[tzinfo] = None) -> List[dict]:
    per_day: Dict[date, List[int]] = collections.defaultdict(list)
    for a in attempts:
        per_day[_local(a.completed_at, tz).date()].append(a.score)

    out = []
    for d in _trailing_days(now, tz):
        scores = per_day.get(d)
        avg = round_half_up(sum(scores) / len(scores)) if scores else 0
        out.append({"date": d.isoformat(), "label": _label(d), "avg": avg})
    return out


def retention_cohorts(attempts: Sequence[AttemptRecord]) -> List[dict]:
    per_user = collections.Counter(a.user_id for a in attempts)
    bands = collections.Counter()
    for count in per_user.values():
        if count == 1:
            bands[RETENTION_BANDS[0]] += 1
        elif count <= 5:
            bands[RETENTION_BANDS[1]] += 1
        else:
            bands[RETENTION_BANDS[2]] += 1
    return [{"name": name, "value": bands.get(name, 0)} for name in RETENTION_BANDS]


def mean_score(attempts: Sequence[AttemptRecord]) -> int:
    if not attempts:
        return 0
    return round_half_up(sum(a.score for a in attempts) / len(attempts))


def kpis(attempts: Sequence[AttemptRecord], total_users: int, total_quizzes: int) -> dict:
    return {
        "total_users": total_users,
        "total_quizzes": total_quizzes,
        "total_attempts": len(attempts),
        "avg_score": mean_score(attempts),
    }


def build_analytics(
    attempts: Optional[Sequence[AttemptRecord]],
    profiles: Optional[Sequence[ProfileRecord]],
    total_users: Optional[int],
    total_quizzes: Optional[int],
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> dict:
    """
    Builds the KPI block plus every admin chart.
    Refuses to run on partial input: a missing upstream list aborts the whole
    build rather than producing zeroed charts.
    """
    if attempts is None or profiles is None or total_users is None or total_quizzes is None:
        raise UpstreamFailure("Failed to fetch analytics data")

    return {
        "stats": kpis(attempts, total_users, total_quizzes),
        "charts": {
            "user_growth": user_growth(profiles, now, tz),
            "traffic_heatmap": traffic_heatmap(attempts, tz),
            "score_distribution": score_distribution(attempts),
            "quiz_popularity": quiz_popularity(attempts),
            "difficulty_matrix": difficulty_matrix(attempts),
            "topic_radar": topic_radar(attempts),
            "pass_fail_ratio": pass_fail_ratio(attempts),
            "avg_score_trend": avg_score_trend(attempts, now, tz),
            "retention_cohorts": retention_cohorts(attempts),
        },
    }


def report_context(attempts: Sequence[AttemptRecord], total_users: int, sample: int = 50) -> dict:
    """Compact dataset handed to the narrative report prompt."""
    return {
        "total_users": total_users,
        "total_attempts": len(attempts),
        "avg_score": mean_score(attempts),
        "recent_activity": [
            {"quiz": a.quiz_title or "Unknown", "score": a.score, "date": a.completed_at.isoformat()}
            for a in list(attempts)[:sample]
        ],
    }


# -----------------------------------------------------------------------------
# Per-role dashboards
# -----------------------------------------------------------------------------
def mentor_overview(quizzes: Sequence[QuizRecord], attempts: Sequence[AttemptRecord]) -> dict:
    by_quiz: Dict[str, List[AttemptRecord]] = collections.defaultdict(list)
    for a in attempts:
        by_quiz[a.quiz_id].append(a)

    own_ids = {q.id for q in quizzes}
    relevant = [a for a in attempts if a.quiz_id in own_ids]

    return {
        "active_quizzes": len(quizzes),
        "total_attempts": len(relevant),
        "total_students": len({a.user_id for a in relevant}),
        "avg_score": mean_score(relevant),
        "quizzes": [
            {
                "id": q.id,
                "title": q.title,
                "difficulty": q.difficulty,
                "attempts": len(by_quiz.get(q.id, [])),
                "avg_score": mean_score(by_quiz.get(q.id, [])),
            }
            for q in quizzes
        ],
    }


def student_overview(attempts: Sequence[AttemptRecord]) -> dict:
    return {
        "quizzes_taken": len(attempts),
        "total_score": sum(a.score for a in attempts),
        "avg_score": mean_score(attempts),
        "total_time_minutes": sum(a.time_taken or 0 for a in attempts) // 60,
    }
