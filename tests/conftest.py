import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

from app import app as flask_app  # noqa: E402
from models import (  # noqa: E402
    Lesson,
    ListeningPassage,
    ListeningQuestion,
    QAItem,
    SoundChangeCategory,
    SoundChangeExercise,
    SoundChangeExerciseItem,
    User,
    Word,
    db,
)


@pytest.fixture()
def app():
    flask_app.config["TESTING"] = True
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def user(app):
    u = User(email="learner@example.com", name="Learner")
    db.session.add(u)
    db.session.commit()
    return u


def make_words(*words):
    rows = [Word(word=w, frequency=rank, part_of_speech=None) for rank, w in enumerate(words, start=1)]
    db.session.add_all(rows)
    db.session.commit()
    return rows


def make_lesson(user_id, title="Stage 1 - Lesson 1: Greetings", order=1, questions=("Q1", "Q2")):
    lesson = Lesson(title=title, order=order, user_id=user_id)
    lesson.qa_items = [QAItem(question=q, answer=f"A{i}", order=i) for i, q in enumerate(questions, start=1)]
    db.session.add(lesson)
    db.session.commit()
    return lesson


def make_passage(title="At the station", difficulty="beginner", order=1, questions=2):
    passage = ListeningPassage(title=title, text="The train leaves at nine.", difficulty=difficulty,
                               topic="travel", order=order)
    passage.questions = [
        ListeningQuestion(type="multiple_choice", question=f"Question {i}?", options='["a", "b"]',
                          answer="a", order=i)
        for i in range(1, questions + 1)
    ]
    db.session.add(passage)
    db.session.commit()
    return passage


def make_category(slug="linking", order=1, item_counts=(2,)):
    """One exercise per entry in ``item_counts``, holding that many items."""
    category = SoundChangeCategory(name=slug.title(), name_ja="リンキング", slug=slug, order=order)
    for j, item_count in enumerate(item_counts, start=1):
        exercise = SoundChangeExercise(title=f"{slug} {j}", difficulty="beginner", order=j)
        exercise.items = [
            SoundChangeExerciseItem(type="dictation", audio_path=f"/audio/{slug}-{j}-{k}.mp3",
                                    sentence="Pick it up.", order=k)
            for k in range(1, item_count + 1)
        ]
        category.exercises.append(exercise)
    db.session.add(category)
    db.session.commit()
    return category
