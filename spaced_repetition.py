"""
Review scheduling for vocabulary words.

Levels run 0-5. Each level maps to a fixed delay before the word is due
again; answering moves the word one level up or down.
"""
from datetime import datetime, timedelta, timezone

MIN_LEVEL = 0
MAX_LEVEL = 5

# ── Interval table ────────────────────────────────────────────────────────────
INTERVALS = {
    0: timedelta(minutes=1),
    1: timedelta(minutes=10),
    2: timedelta(days=1),
    3: timedelta(days=3),
    4: timedelta(days=7),
    5: timedelta(days=14),
}

LEVEL_DESCRIPTIONS = {
    0: "New",
    1: "Learning",
    2: "Familiar",
    3: "Good",
    4: "Strong",
    5: "Mastered",
}


def interval_for(level: int) -> timedelta:
    """Return the review delay for ``level``; unknown levels count as mastered."""
    return INTERVALS.get(level, INTERVALS[MAX_LEVEL])


def next_review_at(level: int, now: datetime = None) -> datetime:
    if now is None:
        now = datetime.now(timezone.utc)
    return now + interval_for(level)


def level_description(level: int) -> str:
    return LEVEL_DESCRIPTIONS.get(level, "Unknown")


# ── Level transitions ─────────────────────────────────────────────────────────

def clamp_level(level: int) -> int:
    return max(MIN_LEVEL, min(MAX_LEVEL, level))


def quality_step(quality: int) -> int:
    """Map a 0-5 answer quality to a level step of +1, 0 or -1.

    Qualities outside 0-5 are clamped first, so 9 behaves like 5 and -2
    like 0.
    """
    quality = max(0, min(5, quality))
    if quality >= 3:
        return 1
    if quality >= 1:
        return 0
    return -1


def correctness_step(is_correct: bool) -> int:
    return 1 if is_correct else -1


def next_level(current: int, is_correct: bool) -> int:
    return clamp_level(clamp_level(current) + correctness_step(is_correct))


def next_level_for_quality(current: int, quality: int) -> int:
    return clamp_level(clamp_level(current) + quality_step(quality))


def review_score(response_time_ms: int, is_correct: bool) -> int:
    """Grade a timed answer on the 0-5 quality scale.

    Wrong answers score 0. A correct answer scores 3, plus one point for
    answering inside 3 seconds and another inside 1.5 seconds.
    """
    if not is_correct:
        return 0
    score = 3
    if response_time_ms < 3000:
        score += 1
    if response_time_ms < 1500:
        score += 1
    return score
