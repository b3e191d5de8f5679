from datetime import timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

import analytics
from errors import UpstreamFailure
from factories import NOW, make_attempt, make_profile, make_quiz


def test_user_growth_covers_thirty_days_with_zeros():
    profiles = [
        make_profile(created_at=NOW),
        make_profile(created_at=NOW - timedelta(hours=3)),
        make_profile(created_at=NOW - timedelta(days=29)),
        make_profile(created_at=NOW - timedelta(days=30)),   # outside the window
    ]
    rows = analytics.user_growth(profiles, NOW)
    assert len(rows) == 30
    assert rows[-1] == {"date": "2026-10-19", "label": "Oct 19", "users": 2}
    assert rows[0]["date"] == "2026-09-20"
    assert rows[0]["users"] == 1
    assert sum(r["users"] for r in rows) == 3
    assert rows[10]["users"] == 0


def test_traffic_heatmap_has_all_hours():
    attempts = [
        make_attempt(completed_at=NOW.replace(hour=0)),
        make_attempt(completed_at=NOW.replace(hour=23)),
        make_attempt(completed_at=NOW.replace(hour=23, minute=59)),
    ]
    rows = analytics.traffic_heatmap(attempts)
    assert [r["hour"] for r in rows] == [f"{h}:00" for h in range(24)]
    assert rows[0]["attempts"] == 1
    assert rows[23]["attempts"] == 2
    assert sum(r["attempts"] for r in rows) == 3


def test_traffic_heatmap_uses_configured_zone():
    rows = analytics.traffic_heatmap([make_attempt(completed_at=NOW.replace(hour=22))], ZoneInfo("Asia/Tokyo"))
    assert rows[7]["attempts"] == 1   # 22:00 UTC is 07:00 in Tokyo


def test_score_buckets_partition_zero_to_twenty():
    attempts = [make_attempt(score=s) for s in range(21)]
    rows = analytics.score_distribution(attempts)
    assert [r["range"] for r in rows] == ["0-4", "5-9", "10-14", "15-19", "20"]
    assert [r["count"] for r in rows] == [5, 5, 5, 5, 1]
    assert sum(r["count"] for r in rows) == 21


def test_quiz_popularity_top_five_descending():
    attempts = (
        [make_attempt(title="A")] * 10 + [make_attempt(title="B")] * 7 + [make_attempt(title="C")] * 7
        + [make_attempt(title="D")] * 3 + [make_attempt(title="E")] + [make_attempt(title=None)] * 2
    )
    rows = analytics.quiz_popularity(attempts)
    names = [r["name"] for r in rows]
    assert len(rows) == 5
    assert names[0] == "A"
    assert set(names[1:3]) == {"B", "C"}
    assert names.index("D") > names.index("B")
    assert names.index("D") > names.index("C")
    assert {"name": "Unknown", "value": 2} in rows
    assert "E" not in names


def test_difficulty_matrix_averages():
    attempts = [
        make_attempt(title="Hard", score=5, time_taken=100),
        make_attempt(title="Hard", score=6, time_taken=150),
        make_attempt(title="Easy", score=20, time_taken=59),
    ]
    rows = {r["name"]: r for r in analytics.difficulty_matrix(attempts)}
    assert rows["Hard"] == {"name": "Hard", "avg_score": 6, "avg_time": 2}   # 5.5 rounds up, 125s -> 2 min
    assert rows["Easy"]["avg_time"] == 0
    assert len(rows) == 2


def test_topic_radar_normalises_to_hundred():
    attempts = [
        make_attempt(category="SQL", score=10),
        make_attempt(category="SQL", score=20),
        make_attempt(category=None, score=4),
    ]
    rows = {r["subject"]: r["score"] for r in analytics.topic_radar(attempts)}
    assert rows == {"SQL": 75, "General": 20}


def test_pass_fail_uses_fixed_threshold():
    attempts = [make_attempt(score=s) for s in (11, 12, 20, 0)]
    rows = analytics.pass_fail_ratio(attempts)
    assert rows[0]["name"] == "Passed" and rows[0]["value"] == 2
    assert rows[1]["name"] == "Failed" and rows[1]["value"] == 2


def test_avg_score_trend_reports_zero_for_empty_days():
    attempts = [
        make_attempt(score=10, completed_at=NOW),
        make_attempt(score=15, completed_at=NOW - timedelta(hours=1)),
    ]
    rows = analytics.avg_score_trend(attempts, NOW)
    assert len(rows) == 30
    assert rows[-1]["avg"] == 13   # 12.5 rounds half up
    assert all(r["avg"] == 0 for r in rows[:-1])
    assert all(isinstance(r["avg"], int) for r in rows)


def test_retention_counts_only_active_users():
    attempts = (
        [make_attempt(user_id="one")]
        + [make_attempt(user_id="two")] * 2
        + [make_attempt(user_id="five")] * 5
        + [make_attempt(user_id="six")] * 6
    )
    rows = analytics.retention_cohorts(attempts)
    assert rows == [
        {"name": "1 Attempt", "value": 1},
        {"name": "2-5 Attempts", "value": 2},
        {"name": "6+ Attempts", "value": 1},
    ]
    assert sum(r["value"] for r in rows) == len({a.user_id for a in attempts})


def test_build_analytics_on_empty_input():
    out = analytics.build_analytics([], [], 0, 0, NOW)
    assert out["stats"] == {"total_users": 0, "total_quizzes": 0, "total_attempts": 0, "avg_score": 0}
    charts = out["charts"]
    assert len(charts) == 9
    assert charts["quiz_popularity"] == []
    assert charts["difficulty_matrix"] == []
    assert all(r["avg"] == 0 for r in charts["avg_score_trend"])


def test_build_analytics_kpis():
    attempts = [make_attempt(score=3), make_attempt(score=4)]
    out = analytics.build_analytics(attempts, [make_profile()], 7, 2, NOW)
    assert out["stats"] == {"total_users": 7, "total_quizzes": 2, "total_attempts": 2, "avg_score": 4}


@pytest.mark.parametrize("missing", ["attempts", "profiles", "total_users", "total_quizzes"])
def test_build_analytics_aborts_on_missing_input(missing):
    kwargs = dict(attempts=[], profiles=[], total_users=0, total_quizzes=0, now=NOW)
    kwargs[missing] = None
    with pytest.raises(UpstreamFailure):
        analytics.build_analytics(**kwargs)


def test_naive_timestamps_are_treated_as_utc():
    attempt = make_attempt(completed_at=NOW.replace(tzinfo=None))
    assert attempt.completed_at.tzinfo == timezone.utc


def test_mentor_overview_ignores_other_quizzes():
    quizzes = [make_quiz("mine-1", title="Mine"), make_quiz("mine-2", title="Also mine")]
    attempts = [
        make_attempt(quiz_id="mine-1", user_id="s1", score=10),
        make_attempt(quiz_id="mine-1", user_id="s2", score=15),
        make_attempt(quiz_id="elsewhere", user_id="s3", score=0),
    ]
    out = analytics.mentor_overview(quizzes, attempts)
    assert out["active_quizzes"] == 2
    assert out["total_attempts"] == 2
    assert out["total_students"] == 2
    assert out["avg_score"] == 13
    per_quiz = {q["id"]: q for q in out["quizzes"]}
    assert per_quiz["mine-1"]["attempts"] == 2
    assert per_quiz["mine-2"] == {"id": "mine-2", "title": "Also mine", "difficulty": "medium",
                                  "attempts": 0, "avg_score": 0}


def test_student_overview():
    attempts = [make_attempt(score=10, time_taken=90), make_attempt(score=5, time_taken=150)]
    assert analytics.student_overview(attempts) == {
        "quizzes_taken": 2, "total_score": 15, "avg_score": 8, "total_time_minutes": 4,
    }


def test_report_context_samples_recent_activity():
    attempts = [make_attempt(score=i) for i in range(60)]
    ctx = analytics.report_context(attempts, total_users=9)
    assert ctx["total_attempts"] == 60
    assert len(ctx["recent_activity"]) == 50
    assert ctx["recent_activity"][0]["quiz"] == "Quiz"
