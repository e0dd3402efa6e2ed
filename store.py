"""
Data access for catalogs and learner progress.

``ProgressStore`` wraps a single SQLAlchemy session and is built per request.
Progress writes are single ``INSERT ... ON CONFLICT DO UPDATE`` statements so
two answers for the same item submitted at once cannot overwrite each other.
The store never commits; callers own the transaction.
"""
import logging
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import case, func, literal, select
from sqlalchemy.dialects import postgresql, sqlite

from aggregation import CatalogUnit, ProgressRecord
from models import (
    CallanProgress,
    Lesson,
    ListeningPassage,
    ListeningProgress,
    QAItem,
    SoundChangeCategory,
    SoundChangeProgress,
    Word,
    WordProgress,
)
from spaced_repetition import (
    INTERVALS,
    MAX_LEVEL,
    MIN_LEVEL,
    clamp_level,
    correctness_step,
    next_review_at,
    quality_step,
)

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class UnsupportedDialectError(RuntimeError):
    pass


class ProgressStore:

    def __init__(self, session):
        self.session = session

    def _upsert(self, model):
        dialect = self.session.get_bind().dialect.name
        try:
            return _UPSERT_INSERTS[dialect](model)
        except KeyError:
            raise UnsupportedDialectError(f"Atomic upsert is not supported on {dialect!r}") from None

    # ── Catalog providers ─────────────────────────────────────────────────────

    def lesson_catalog(self, user_id):
        lessons = self.session.execute(
            select(Lesson).filter_by(user_id=user_id).order_by(Lesson.order)
        ).scalars().all()
        return [
            CatalogUnit(unit_id=lesson.id, title=lesson.title,
                        item_ids=tuple(qa.id for qa in lesson.qa_items))
            for lesson in lessons
        ]

    def passage_catalog(self):
        passages = self.session.execute(select(ListeningPassage).order_by(ListeningPassage.order)).scalars().all()
        return [
            CatalogUnit(unit_id=p.id, title=p.title, item_ids=tuple(q.id for q in p.questions))
            for p in passages
        ]

    def sound_change_catalog(self):
        categories = self.session.execute(
            select(SoundChangeCategory).order_by(SoundChangeCategory.order)
        ).scalars().all()
        return [
            CatalogUnit(
                unit_id=cat.id,
                title=cat.name,
                item_ids=tuple(item.id for ex in cat.exercises for item in ex.items),
                subunit_count=len(cat.exercises),
            )
            for cat in categories
        ]

    def word_count(self):
        return self.session.execute(select(func.count(Word.id))).scalar_one()

    # ── Progress providers ────────────────────────────────────────────────────

    def callan_rows(self, user_id, lesson_id=None, mode=None):
        query = (
            select(CallanProgress)
            .join(QAItem, CallanProgress.qa_item_id == QAItem.id)
            .where(CallanProgress.user_id == user_id)
            .order_by(QAItem.order, CallanProgress.mode)
        )
        if lesson_id is not None:
            query = query.where(QAItem.lesson_id == lesson_id)
        if mode is not None:
            query = query.where(CallanProgress.mode == mode)
        return self.session.execute(query).scalars().all()

    def callan_records(self, user_id, lesson_id=None, mode=None):
        return [
            ProgressRecord(
                item_id=row.qa_item_id,
                mode=row.mode,
                correct_count=row.correct_count,
                total_count=row.total_count,
                last_practiced=row.last_practiced,
            )
            for row in self.callan_rows(user_id, lesson_id=lesson_id, mode=mode)
        ]

    def listening_records(self, user_id):
        rows = self.session.execute(
            select(ListeningProgress)
            .filter_by(user_id=user_id)
            .order_by(ListeningProgress.answered_at, ListeningProgress.id)
        ).scalars().all()
        return [
            ProgressRecord(
                item_id=row.question_id,
                correct_count=int(row.is_correct),
                total_count=1,
                last_practiced=row.answered_at,
            )
            for row in rows
        ]

    def sound_change_records(self, user_id):
        """Attempts oldest first, so the last one per item is the latest."""
        rows = self.session.execute(
            select(SoundChangeProgress)
            .filter_by(user_id=user_id)
            .order_by(SoundChangeProgress.answered_at, SoundChangeProgress.id)
        ).scalars().all()
        return [
            ProgressRecord(
                item_id=row.item_id,
                correct_count=int(row.is_correct),
                total_count=1,
                last_practiced=row.answered_at,
                score=row.accuracy,
            )
            for row in rows
        ]

    def word_records(self, user_id):
        rows = self.session.execute(select(WordProgress).filter_by(user_id=user_id)).scalars().all()
        return [
            ProgressRecord(
                item_id=str(row.word_id),
                correct_count=row.correct_count,
                total_count=row.review_count,
                last_practiced=row.last_reviewed,
                level=row.level,
            )
            for row in rows
        ]

    # ── Writes ────────────────────────────────────────────────────────────────

    def record_callan_attempt(self, user_id, qa_item_id, mode, is_correct, now=None):
        """Create or increment the (user, item, mode) counter row and return it."""
        if now is None:
            now = datetime.now(timezone.utc)
        hit = int(bool(is_correct))
        table = CallanProgress.__table__

        stmt = self._upsert(CallanProgress).values(
            id=str(uuid4()),
            user_id=user_id,
            qa_item_id=qa_item_id,
            mode=mode,
            correct_count=hit,
            total_count=1,
            last_practiced=now,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "qa_item_id", "mode"],
            set_={
                "correct_count": table.c.correct_count + hit,
                "total_count": table.c.total_count + 1,
                "last_practiced": now,
                "updated_at": now,
            },
        )
        self.session.execute(stmt)
        logger.info("callan attempt user=%s item=%s mode=%s correct=%s", user_id, qa_item_id, mode, bool(hit))

        return self.session.execute(
            select(CallanProgress)
            .filter_by(user_id=user_id, qa_item_id=qa_item_id, mode=mode)
            .execution_options(populate_existing=True)
        ).scalar_one()

    def record_word_review(self, user_id, word_id, is_correct=None, quality=None, now=None):
        """Apply one review outcome to the (user, word) row and return it.

        Pass either ``is_correct`` or a 0-5 ``quality``. The new level and its
        next-review time are computed inside the statement from the stored
        level.
        """
        if (is_correct is None) == (quality is None):
            raise ValueError("pass exactly one of is_correct or quality")
        if now is None:
            now = datetime.now(timezone.utc)
        if quality is not None:
            step = quality_step(quality)
            hit = int(quality >= 3)
        else:
            step = correctness_step(is_correct)
            hit = int(bool(is_correct))

        table = WordProgress.__table__
        new_level = _clamped_level(_clamped_level(table.c.level) + step)
        review_type = table.c.next_review.type
        next_review = case(
            {level: literal(next_review_at(level, now), type_=review_type) for level in INTERVALS},
            value=new_level,
            else_=literal(next_review_at(MAX_LEVEL, now), type_=review_type),
        )

        first_level = clamp_level(MIN_LEVEL + step)
        stmt = self._upsert(WordProgress).values(
            user_id=user_id,
            word_id=word_id,
            level=first_level,
            last_reviewed=now,
            next_review=next_review_at(first_level, now),
            review_count=1,
            correct_count=hit,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "word_id"],
            set_={
                "level": new_level,
                "next_review": next_review,
                "last_reviewed": now,
                "review_count": table.c.review_count + 1,
                "correct_count": table.c.correct_count + hit,
                "updated_at": now,
            },
        )
        self.session.execute(stmt)
        logger.info("word review user=%s word=%s step=%+d", user_id, word_id, step)

        return self.session.execute(
            select(WordProgress)
            .filter_by(user_id=user_id, word_id=word_id)
            .execution_options(populate_existing=True)
        ).scalar_one()

    def record_listening_answer(self, user_id, question_id, is_correct, now=None):
        row = ListeningProgress(user_id=user_id, question_id=question_id, is_correct=is_correct,
                                answered_at=now or datetime.now(timezone.utc))
        self.session.add(row)
        self.session.flush()
        return row

    def record_sound_change_answer(self, user_id, item_id, accuracy, is_correct, now=None):
        row = SoundChangeProgress(user_id=user_id, item_id=item_id, accuracy=accuracy, is_correct=is_correct,
                                  answered_at=now or datetime.now(timezone.utc))
        self.session.add(row)
        self.session.flush()
        return row


def _clamped_level(expr):
    return case(
        (expr > MAX_LEVEL, MAX_LEVEL),
        (expr < MIN_LEVEL, MIN_LEVEL),
        else_=expr,
    )
