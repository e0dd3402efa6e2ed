import json
from datetime import datetime, timezone
from uuid import uuid4

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


def _iso(value):
    """Serialise a stored timestamp; naive values are UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


# ── Users and vocabulary ──────────────────────────────────────────────────────

class User(db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    word_progress = db.relationship("WordProgress", backref="user", lazy=True, cascade="all, delete-orphan")
    lessons = db.relationship("Lesson", backref="user", lazy=True, cascade="all, delete-orphan")
    callan_progress = db.relationship("CallanProgress", backref="user", lazy=True, cascade="all, delete-orphan")
    listening_progress = db.relationship("ListeningProgress", backref="user", lazy=True,
                                         cascade="all, delete-orphan")
    sound_change_progress = db.relationship("SoundChangeProgress", backref="user", lazy=True,
                                            cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "createdAt": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.email}>"


class Word(db.Model):
    __tablename__ = "word"

    id = db.Column(db.Integer, primary_key=True)
    word = db.Column(db.String(100), unique=True, nullable=False)
    frequency = db.Column(db.Integer, nullable=False, index=True)  # 1 = most common
    part_of_speech = db.Column(db.String(30), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    progress = db.relationship("WordProgress", backref="word", lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "word": self.word,
            "frequency": self.frequency,
            "partOfSpeech": self.part_of_speech,
            "createdAt": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Word #{self.frequency} {self.word}>"


class WordProgress(db.Model):
    __tablename__ = "word_progress"
    __table_args__ = (db.UniqueConstraint("user_id", "word_id", name="uq_word_progress_user_word"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    word_id = db.Column(db.Integer, db.ForeignKey("word.id", ondelete="CASCADE"), nullable=False)
    level = db.Column(db.Integer, nullable=False, default=0)
    last_reviewed = db.Column(db.DateTime(timezone=True), nullable=True)
    next_review = db.Column(db.DateTime(timezone=True), nullable=True)
    review_count = db.Column(db.Integer, nullable=False, default=0)
    correct_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def to_dict(self, include_word=False):
        data = {
            "id": self.id,
            "userId": self.user_id,
            "wordId": self.word_id,
            "level": self.level,
            "lastReviewed": _iso(self.last_reviewed),
            "nextReview": _iso(self.next_review),
            "reviewCount": self.review_count,
            "correctCount": self.correct_count,
            "updatedAt": _iso(self.updated_at),
        }
        if include_word:
            data["word"] = self.word.to_dict()
        return data

    def __repr__(self):
        return f"<WordProgress user={self.user_id} word={self.word_id} level={self.level}>"


# ── Callan lessons ────────────────────────────────────────────────────────────

class Lesson(db.Model):
    __tablename__ = "lesson"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    order = db.Column(db.Integer, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    qa_items = db.relationship("QAItem", backref="lesson", lazy=True, order_by="QAItem.order",
                               cascade="all, delete-orphan")

    def to_dict(self, include_items=True):
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "order": self.order,
            "userId": self.user_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if include_items:
            data["qaItems"] = [qa.to_dict() for qa in self.qa_items]
        return data

    def __repr__(self):
        return f"<Lesson {self.order} {self.title}>"


class QAItem(db.Model):
    __tablename__ = "qa_item"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    question = db.Column(db.Text, nullable=False)
    answer = db.Column(db.Text, nullable=False)
    order = db.Column(db.Integer, nullable=False)
    lesson_id = db.Column(db.String(36), db.ForeignKey("lesson.id", ondelete="CASCADE"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    progress = db.relationship("CallanProgress", backref="qa_item", lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "question": self.question,
            "answer": self.answer,
            "order": self.order,
            "lessonId": self.lesson_id,
        }

    def __repr__(self):
        return f"<QAItem {self.order} {self.question[:30]}>"


class CallanProgress(db.Model):
    __tablename__ = "callan_progress"
    __table_args__ = (
        db.UniqueConstraint("user_id", "qa_item_id", "mode", name="uq_callan_progress_user_item_mode"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    qa_item_id = db.Column(db.String(36), db.ForeignKey("qa_item.id", ondelete="CASCADE"), nullable=False)
    mode = db.Column(db.String(20), nullable=False)  # qa | shadowing | dictation
    correct_count = db.Column(db.Integer, nullable=False, default=0)
    total_count = db.Column(db.Integer, nullable=False, default=0)
    last_practiced = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def to_dict(self, include_item=False):
        data = {
            "id": self.id,
            "userId": self.user_id,
            "qaItemId": self.qa_item_id,
            "mode": self.mode,
            "correctCount": self.correct_count,
            "totalCount": self.total_count,
            "lastPracticed": _iso(self.last_practiced),
        }
        if include_item:
            data["qaItem"] = self.qa_item.to_dict()
        return data

    def __repr__(self):
        return f"<CallanProgress {self.mode} {self.correct_count}/{self.total_count}>"


# ── Listening comprehension ───────────────────────────────────────────────────

class ListeningPassage(db.Model):
    __tablename__ = "listening_passage"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    title = db.Column(db.String(255), nullable=False)
    text = db.Column(db.Text, nullable=False)
    difficulty = db.Column(db.String(20), nullable=False)  # beginner | intermediate | advanced
    topic = db.Column(db.String(100), nullable=True)
    order = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    questions = db.relationship("ListeningQuestion", backref="passage", lazy=True,
                                order_by="ListeningQuestion.order", cascade="all, delete-orphan")

    def to_dict(self, full_questions=False):
        return {
            "id": self.id,
            "title": self.title,
            "text": self.text,
            "difficulty": self.difficulty,
            "topic": self.topic,
            "order": self.order,
            "questions": [q.to_dict() if full_questions else {"id": q.id} for q in self.questions],
        }

    def __repr__(self):
        return f"<ListeningPassage {self.title}>"


class ListeningQuestion(db.Model):
    __tablename__ = "listening_question"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    passage_id = db.Column(db.String(36), db.ForeignKey("listening_passage.id", ondelete="CASCADE"),
                           nullable=False)
    type = db.Column(db.String(30), nullable=False)
    question = db.Column(db.Text, nullable=False)
    options = db.Column(db.Text, nullable=True)  # JSON-encoded list
    answer = db.Column(db.Text, nullable=False)
    order = db.Column(db.Integer, nullable=False)

    progress = db.relationship("ListeningProgress", backref="question", lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "passageId": self.passage_id,
            "type": self.type,
            "question": self.question,
            "options": json.loads(self.options) if self.options else None,
            "answer": self.answer,
            "order": self.order,
        }


class ListeningProgress(db.Model):
    __tablename__ = "listening_progress"
    __table_args__ = (db.Index("ix_listening_progress_user_question", "user_id", "question_id"),)

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    question_id = db.Column(db.String(36), db.ForeignKey("listening_question.id", ondelete="CASCADE"),
                            nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False)
    answered_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "questionId": self.question_id,
            "isCorrect": self.is_correct,
            "answeredAt": _iso(self.answered_at),
        }


# ── Sound changes (connected-speech pronunciation) ────────────────────────────

class SoundChangeCategory(db.Model):
    __tablename__ = "sound_change_category"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    name = db.Column(db.String(100), nullable=False)
    name_ja = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    order = db.Column(db.Integer, nullable=False)

    exercises = db.relationship("SoundChangeExercise", backref="category", lazy=True,
                                order_by="SoundChangeExercise.order", cascade="all, delete-orphan")

    def to_dict(self, include_items=False):
        data = {
            "id": self.id,
            "name": self.name,
            "nameJa": self.name_ja,
            "slug": self.slug,
            "description": self.description,
            "order": self.order,
        }
        if include_items:
            data["exercises"] = [
                dict(ex.to_dict(), items=[{"id": item.id} for item in ex.items]) for ex in self.exercises
            ]
        else:
            data["exercises"] = [{"id": ex.id} for ex in self.exercises]
        return data


class SoundChangeExercise(db.Model):
    __tablename__ = "sound_change_exercise"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    category_id = db.Column(db.String(36), db.ForeignKey("sound_change_category.id", ondelete="CASCADE"),
                            nullable=False)
    title = db.Column(db.String(255), nullable=False)
    difficulty = db.Column(db.String(20), nullable=False)
    order = db.Column(db.Integer, nullable=False)

    items = db.relationship("SoundChangeExerciseItem", backref="exercise", lazy=True,
                            order_by="SoundChangeExerciseItem.order", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "categoryId": self.category_id,
            "title": self.title,
            "difficulty": self.difficulty,
            "order": self.order,
        }


class SoundChangeExerciseItem(db.Model):
    __tablename__ = "sound_change_exercise_item"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    exercise_id = db.Column(db.String(36), db.ForeignKey("sound_change_exercise.id", ondelete="CASCADE"),
                            nullable=False)
    type = db.Column(db.String(20), nullable=False)  # fill_blank | dictation
    audio_path = db.Column(db.String(255), nullable=False)
    sentence = db.Column(db.Text, nullable=False)
    blank = db.Column(db.String(100), nullable=True)
    blank_index = db.Column(db.Integer, nullable=True)
    explanation = db.Column(db.Text, nullable=True)
    order = db.Column(db.Integer, nullable=False)

    progress = db.relationship("SoundChangeProgress", backref="item", lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "exerciseId": self.exercise_id,
            "type": self.type,
            "audioPath": self.audio_path,
            "sentence": self.sentence,
            "blank": self.blank,
            "blankIndex": self.blank_index,
            "explanation": self.explanation,
            "order": self.order,
        }


class SoundChangeProgress(db.Model):
    __tablename__ = "sound_change_progress"
    __table_args__ = (db.Index("ix_sound_change_progress_user_item", "user_id", "item_id"),)

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    item_id = db.Column(db.String(36), db.ForeignKey("sound_change_exercise_item.id", ondelete="CASCADE"),
                        nullable=False)
    accuracy = db.Column(db.Integer, nullable=False)  # 0-100
    is_correct = db.Column(db.Boolean, nullable=False)
    answered_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "itemId": self.item_id,
            "accuracy": self.accuracy,
            "isCorrect": self.is_correct,
            "answeredAt": _iso(self.answered_at),
        }
