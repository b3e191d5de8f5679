# seed.py
"""Development-only mock data for the analytics views."""
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Optional

from schemas import QuizCreateIn
from store import AdminStore

logger = logging.getLogger(__name__)

CATEGORIES = ["React", "JavaScript", "Python", "System Design", "CSS", "SQL", "Algorithms", "Security"]
NAMES = [
    "Alice", "Bob", "Charlie", "David", "Eve", "Frank", "Grace", "Heidi", "Ivan", "Judy",
    "Kevin", "Liam", "Mia", "Noah", "Olivia", "Peggy", "Quentin", "Rupert", "Sybil", "Ted",
]
MIN_QUIZZES = 5
MIN_USERS = 20
ATTEMPTS = 500
DAYS_BACK = 30


def _random_date(rng: random.Random, now: datetime, days_back: int = DAYS_BACK) -> datetime:
    d = now - timedelta(days=rng.randrange(days_back))
    return d.replace(hour=rng.randrange(24), minute=rng.randrange(60))


def seed_database(store: AdminStore, rng: Optional[random.Random] = None,
                  now: Optional[datetime] = None) -> dict:
    rng = rng or random.Random()
    now = now or datetime.now(timezone.utc)

    # 1) quizzes, owned by the first admin
    if store.count_quizzes() < MIN_QUIZZES:
        creator = store.first_admin_id()
        if creator:
            for i, cat in enumerate(CATEGORIES):
                store.create_quiz(QuizCreateIn(
                    title=f"{cat} Mastery Level {i % 3 + 1}",
                    description=f"Test your advanced knowledge in {cat}.",
                    category=cat,
                    difficulty=("hard", "medium", "easy")[i % 3],
                    time_limit=30,
                    is_published=True,
                ), created_by=creator)
        else:
            logger.warning("No admin found to own mock quizzes, using existing ones")
    quiz_ids = [q.id for q in store.list_quizzes()]

    # 2) students
    if store.count_profiles() < MIN_USERS:
        user_ids = []
        for name in NAMES:
            email = f"mock.{name.lower()}.{rng.randrange(10000)}@test.com"
            profile = store.create_profile(
                email=email,
                full_name=f"{name} Mock",
                role="student",
                password="password123",
                created_at=_random_date(rng, now),
            )
            user_ids.append(profile.id)
    else:
        user_ids = [p.id for p in store.list_profiles()]

    # 3) attempts, scores on a 0-20 scale nudged up or down by 2
    created = 0
    if quiz_ids and user_ids:
        rows = []
        for _ in range(ATTEMPTS):
            base = rng.randrange(21)
            weighted = min(20, max(0, base + (2 if rng.random() > 0.5 else -2)))
            rows.append({
                "quiz_id": rng.choice(quiz_ids),
                "user_id": rng.choice(user_ids),
                "score": weighted,
                "total_questions": 20,
                "completed_at": _random_date(rng, now),
                "time_taken": rng.randrange(600) + 60,
                "answers": {},
            })
        created = store.insert_attempts(rows)

    logger.info("Seeded %d users and %d attempts", len(user_ids), created)
    return {
        "success": True,
        "message": f"Database populated with {len(user_ids)} users context (total) and {created} attempts.",
    }
