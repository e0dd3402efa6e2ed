"""
Progress aggregation over catalogs and per-user progress records.

Everything here is computed fresh from the rows handed in; nothing is cached
between calls. The subsystem summaries at the bottom take the data-access
object as their first argument and shape the JSON returned by the API.
"""
import math
from dataclasses import dataclass, field
from datetime import date, datetime

from streaks import streak_days

MODES = ("qa", "shadowing", "dictation")


@dataclass(frozen=True)
class CatalogUnit:
    """A lesson, passage or category and the ids of the items it owns."""

    unit_id: str
    item_ids: tuple = ()
    title: str = ""
    subunit_count: int = 0


@dataclass(frozen=True)
class ProgressRecord:
    """Cumulative practice state for one (user, item[, mode]) pairing.

    Append-only attempt logs map to one record per attempt with
    ``total_count == 1``.
    """

    item_id: str
    correct_count: int = 0
    total_count: int = 0
    last_practiced: datetime | None = None
    mode: str | None = None
    level: int | None = None
    score: float | None = None


@dataclass
class ModeTotals:
    total: int = 0
    correct: int = 0

    @property
    def accuracy(self) -> int:
        return percent(self.correct, self.total)


@dataclass(frozen=True)
class AggregateSummary:
    total_units: int = 0
    total_items: int = 0
    practiced_items: int = 0
    completed_units: int = 0
    correct: int = 0
    total: int = 0
    streak_days: int = 0
    by_mode: dict = field(default_factory=dict)

    @property
    def accuracy(self) -> int:
        return percent(self.correct, self.total)


def percent(part, whole) -> int:
    """Round-half-up integer percentage; 0 when ``whole`` is empty."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def average_score(values) -> int:
    values = list(values)
    if not values:
        return 0
    return math.floor(sum(values) / len(values) + 0.5)


def latest_by_item(records) -> dict:
    """Keep the last record seen for each item, in input order."""
    latest = {}
    for record in records:
        latest[record.item_id] = record
    return latest


def summarize(catalog, progress, modes=MODES, today: date = None) -> AggregateSummary:
    catalog = list(catalog)
    progress = list(progress)

    by_mode = {mode: ModeTotals() for mode in modes}
    correct = total = 0
    for record in progress:
        correct += record.correct_count
        total += record.total_count
        bucket = by_mode.get(record.mode)
        if bucket is not None:
            bucket.correct += record.correct_count
            bucket.total += record.total_count

    # Records pointing at items outside the catalog still count as practiced
    # but can never complete a unit.
    practiced_ids = {record.item_id for record in progress}
    completed = sum(
        1 for unit in catalog
        if unit.item_ids and set(unit.item_ids) <= practiced_ids
    )

    return AggregateSummary(
        total_units=len(catalog),
        total_items=sum(len(unit.item_ids) for unit in catalog),
        practiced_items=len(practiced_ids),
        completed_units=completed,
        correct=correct,
        total=total,
        streak_days=streak_days((record.last_practiced for record in progress), today=today),
        by_mode=by_mode,
    )


# ── Subsystem summaries ───────────────────────────────────────────────────────

def callan_summary(store, user_id, today: date = None) -> dict:
    summary = summarize(store.lesson_catalog(user_id), store.callan_records(user_id), today=today)
    qa = summary.by_mode["qa"]
    shadowing = summary.by_mode["shadowing"]
    dictation = summary.by_mode["dictation"]
    return {
        "totalLessons": summary.total_units,
        "completedLessons": summary.completed_units,
        "totalQAItems": summary.total_items,
        "practicedQAItems": summary.practiced_items,
        "byMode": {
            "qa": {"total": qa.total, "correct": qa.correct, "accuracy": qa.accuracy},
            # Shadowing has no right/wrong, only a repetition count.
            "shadowing": {"total": shadowing.total, "practiced": shadowing.total},
            "dictation": {"total": dictation.total, "correct": dictation.correct, "accuracy": dictation.accuracy},
        },
        "streakDays": summary.streak_days,
    }


def listening_summary(store, user_id) -> dict:
    summary = summarize(store.passage_catalog(), store.listening_records(user_id), modes=())
    return {
        "totalPassages": summary.total_units,
        "totalQuestions": summary.total_items,
        "answeredQuestions": summary.practiced_items,
        "correctAnswers": summary.correct,
        "accuracy": summary.accuracy,
    }


def sound_change_summary(store, user_id) -> dict:
    catalog = store.sound_change_catalog()
    attempts = store.sound_change_records(user_id)
    summary = summarize(catalog, attempts, modes=())

    latest = latest_by_item(attempts).values()
    by_category = []
    for unit in catalog:
        item_ids = set(unit.item_ids)
        unit_attempts = [a for a in attempts if a.item_id in item_ids]
        by_category.append({
            "categoryId": unit.unit_id,
            "name": unit.title,
            "totalExercises": unit.subunit_count,
            "totalItems": len(unit.item_ids),
            "answeredItems": len({a.item_id for a in unit_attempts}),
            "averageAccuracy": average_score(a.score for a in unit_attempts),
        })

    return {
        "totalCategories": summary.total_units,
        "totalItems": summary.total_items,
        "answeredItems": summary.practiced_items,
        "correctItems": sum(1 for record in latest if record.correct_count),
        "averageAccuracy": average_score(record.score for record in latest),
        "byCategory": by_category,
    }


def word_statistics(store, user_id) -> dict:
    total_words = store.word_count()
    records = store.word_records(user_id)
    learned = sum(1 for record in records if record.level > 0)
    mastered = sum(1 for record in records if record.level >= 4)
    return {
        "totalWords": total_words,
        "learnedWords": learned,
        "masteredWords": mastered,
        "progressPercent": percent(learned, total_words),
        "masteryPercent": percent(mastered, total_words),
    }
