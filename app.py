import logging
import math
import os
from datetime import datetime, time, timedelta, timezone

from flask import Flask, jsonify, request
from flask_cors import CORS
from sqlalchemy import func, select
from werkzeug.exceptions import HTTPException

from aggregation import MODES, callan_summary, listening_summary, sound_change_summary, word_statistics
from config import Config
from models import (
    Lesson,
    ListeningPassage,
    ListeningQuestion,
    QAItem,
    SoundChangeCategory,
    SoundChangeExercise,
    SoundChangeExerciseItem,
    User,
    Word,
    WordProgress,
    db,
)
from seed import seed_cli
from spaced_repetition import level_description, review_score
from store import ProgressStore
from streaks import today_local

app = Flask(__name__)
app.config.from_object(Config)

logging.basicConfig(
    level=app.config["LOG_LEVEL"],
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
app.logger.setLevel(app.config["LOG_LEVEL"])

CORS(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}})
db.init_app(app)
app.cli.add_command(seed_cli)

VALID_DIFFICULTIES = ("beginner", "intermediate", "advanced")


# ── Helpers ───────────────────────────────────────────────────────────────────

def get_store():
    """Data-access object bound to this request's session."""
    return ProgressStore(db.session)


def parse_positive_int(value, default, maximum=None):
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    if parsed < 1:
        return default
    if maximum and parsed > maximum:
        return maximum
    return parsed


def is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_nonempty_str(value):
    return isinstance(value, str) and bool(value.strip())


def json_body():
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def local_day_bounds(day):
    """UTC [start, end) of a local calendar day."""
    start = datetime.combine(day, time.min).astimezone()
    end = datetime.combine(day + timedelta(days=1), time.min).astimezone()
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


# ── Errors ────────────────────────────────────────────────────────────────────

@app.errorhandler(HTTPException)
def handle_http_error(e):
    return jsonify({"error": e.description}), e.code


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    db.session.rollback()
    app.logger.exception("Unhandled error on %s %s", request.method, request.path)
    return jsonify({"error": "Something went wrong!"}), 500


@app.route("/api/health")
def health():
    return jsonify({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})


# ── Users ─────────────────────────────────────────────────────────────────────

@app.route("/api/users")
def list_users():
    users = db.session.execute(select(User).order_by(User.id)).scalars().all()
    return jsonify({"users": [u.to_dict() for u in users]})


@app.route("/api/users/<int:user_id>")
def get_user(user_id):
    user = db.get_or_404(User, user_id, description="User not found")
    return jsonify({"user": user.to_dict()})


@app.route("/api/users", methods=["POST"])
def create_user():
    data = json_body()
    email = data.get("email")
    name = data.get("name")
    if not is_nonempty_str(email) or not is_nonempty_str(name):
        return jsonify({"error": "Email and name are required"}), 400
    email, name = email.strip(), name.strip()
    if db.session.execute(select(User).filter_by(email=email)).scalar_one_or_none():
        return jsonify({"error": "User with this email already exists"}), 400
    user = User(email=email, name=name)
    db.session.add(user)
    db.session.commit()
    app.logger.info("Created user %s", user.id)
    return jsonify({"user": user.to_dict()}), 201


@app.route("/api/users/login", methods=["POST"])
def login():
    email = json_body().get("email")
    if not is_nonempty_str(email):
        return jsonify({"error": "Email is required"}), 400
    email = email.strip()
    user = db.first_or_404(select(User).filter_by(email=email), description="User not found")
    return jsonify({"user": user.to_dict()})


@app.route("/api/users/<int:user_id>", methods=["PUT"])
def update_user(user_id):
    user = db.get_or_404(User, user_id, description="User not found")
    name = json_body().get("name")
    if name is not None:
        if not is_nonempty_str(name):
            return jsonify({"error": "name cannot be empty"}), 400
        user.name = name.strip()
    db.session.commit()
    return jsonify({"user": user.to_dict()})


@app.route("/api/users/<int:user_id>", methods=["DELETE"])
def delete_user(user_id):
    user = db.get_or_404(User, user_id, description="User not found")
    db.session.delete(user)
    db.session.commit()
    app.logger.info("Deleted user %s", user_id)
    return jsonify({"message": "User deleted successfully"})


# ── Words ─────────────────────────────────────────────────────────────────────

@app.route("/api/words")
def list_words():
    page = parse_positive_int(request.args.get("page"), 1)
    limit = parse_positive_int(request.args.get("limit"), app.config["WORDS_PAGE_SIZE"],
                               app.config["WORDS_MAX_PAGE_SIZE"])
    words = db.session.execute(
        select(Word).order_by(Word.frequency).offset((page - 1) * limit).limit(limit)
    ).scalars().all()
    total = db.session.execute(select(func.count(Word.id))).scalar_one()
    return jsonify({
        "words": [w.to_dict() for w in words],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit),
        },
    })


@app.route("/api/words/range/<start>/<end>")
def words_in_range(start, end):
    try:
        start, end = int(start), int(end)
    except ValueError:
        start = end = 0
    if start < 1 or end < 1:
        return jsonify({"error": "Invalid range parameters. Must be positive integers."}), 400
    if start > end:
        return jsonify({"error": "Start must be less than or equal to end."}), 400
    words = db.session.execute(
        select(Word).where(Word.frequency.between(start, end)).order_by(Word.frequency)
    ).scalars().all()
    return jsonify({"words": [w.to_dict() for w in words], "count": len(words)})


@app.route("/api/words/random")
def random_words():
    count = parse_positive_int(request.args.get("count"), 10, 100)
    max_frequency = parse_positive_int(request.args.get("maxFrequency"), app.config["RANDOM_WORDS_MAX_FREQUENCY"])
    words = db.session.execute(
        select(Word).where(Word.frequency <= max_frequency).order_by(func.random()).limit(count)
    ).scalars().all()
    return jsonify({"words": [w.to_dict() for w in words]})


@app.route("/api/words/pos/<part_of_speech>")
def words_by_part_of_speech(part_of_speech):
    count = parse_positive_int(request.args.get("count"), 10, 100)
    words = db.session.execute(
        select(Word).filter_by(part_of_speech=part_of_speech).order_by(func.random()).limit(count)
    ).scalars().all()
    return jsonify({"words": [w.to_dict() for w in words]})


@app.route("/api/words/<word_id>")
def get_word(word_id):
    try:
        word_id = int(word_id)
    except ValueError:
        word_id = 0
    if word_id < 1:
        return jsonify({"error": "Invalid word ID. Must be a positive integer."}), 400
    word = db.get_or_404(Word, word_id, description="Word not found")
    return jsonify({"word": word.to_dict()})


@app.route("/api/words/search/<query>")
def search_words(query):
    words = db.session.execute(
        select(Word)
        .where(Word.word.ilike(f"%{query}%"))
        .order_by(Word.frequency)
        .limit(app.config["SEARCH_RESULT_LIMIT"])
    ).scalars().all()
    return jsonify({"words": [w.to_dict() for w in words]})


# ── Word review progress ──────────────────────────────────────────────────────

@app.route("/api/progress/user/<int:user_id>")
def user_progress(user_id):
    rows = db.session.execute(
        select(WordProgress).filter_by(user_id=user_id).order_by(WordProgress.updated_at.desc())
    ).scalars().all()
    return jsonify({
        "progress": [p.to_dict(include_word=True) for p in rows],
        "statistics": word_statistics(get_store(), user_id),
    })


@app.route("/api/progress/review/<int:user_id>")
def due_reviews(user_id):
    limit = parse_positive_int(request.args.get("limit"), app.config["REVIEW_BATCH_SIZE"])
    now = datetime.now(timezone.utc)
    rows = db.session.execute(
        select(WordProgress)
        .where(WordProgress.user_id == user_id, WordProgress.next_review <= now)
        .order_by(WordProgress.next_review)
        .limit(limit)
    ).scalars().all()
    return jsonify({"words": [p.to_dict(include_word=True) for p in rows]})


@app.route("/api/progress/new/<int:user_id>")
def new_words(user_id):
    limit = parse_positive_int(request.args.get("limit"), app.config["NEW_WORDS_BATCH_SIZE"])
    max_frequency = parse_positive_int(request.args.get("maxFrequency"), app.config["NEW_WORDS_MAX_FREQUENCY"])
    seen = select(WordProgress.word_id).where(WordProgress.user_id == user_id)
    words = db.session.execute(
        select(Word)
        .where(Word.id.not_in(seen), Word.frequency <= max_frequency)
        .order_by(Word.frequency)
        .limit(limit)
    ).scalars().all()
    return jsonify({"words": [w.to_dict() for w in words]})


@app.route("/api/progress/update", methods=["POST"])
def update_word_progress():
    """Record one review; accepts ``correct`` (optionally timed) or a 0-5 ``quality``."""
    data = json_body()
    user_id = data.get("userId")
    word_id = data.get("wordId")
    correct = data.get("correct")
    quality = data.get("quality")
    response_time_ms = data.get("responseTimeMs")

    if not is_int(user_id) or not is_int(word_id) or (correct is None and quality is None):
        return jsonify({"error": "Missing required fields"}), 400
    if correct is not None and not isinstance(correct, bool):
        return jsonify({"error": "correct must be a boolean"}), 400
    if quality is not None and not is_int(quality):
        return jsonify({"error": "quality must be an integer"}), 400
    if response_time_ms is not None and not is_number(response_time_ms):
        return jsonify({"error": "responseTimeMs must be a number"}), 400

    db.get_or_404(User, user_id, description="User not found")
    db.get_or_404(Word, word_id, description="Word not found")

    if quality is None and response_time_ms is not None:
        quality = review_score(response_time_ms, correct)
    if quality is not None:
        progress = get_store().record_word_review(user_id, word_id, quality=quality)
    else:
        progress = get_store().record_word_review(user_id, word_id, is_correct=correct)
    db.session.commit()
    return jsonify({"progress": progress.to_dict(), "levelDescription": level_description(progress.level)})


@app.route("/api/progress/stats/<int:user_id>")
def review_stats(user_id):
    start, end = local_day_bounds(today_local())
    today_reviews = db.session.execute(
        select(func.count(WordProgress.id)).where(
            WordProgress.user_id == user_id,
            WordProgress.last_reviewed >= start,
            WordProgress.last_reviewed < end,
        )
    ).scalar_one()
    total, average = db.session.execute(
        select(func.count(WordProgress.id), func.avg(WordProgress.level)).where(WordProgress.user_id == user_id)
    ).one()
    distribution = db.session.execute(
        select(WordProgress.level, func.count(WordProgress.id))
        .where(WordProgress.user_id == user_id)
        .group_by(WordProgress.level)
        .order_by(WordProgress.level)
    ).all()
    return jsonify({
        "todayReviews": today_reviews,
        "totalLearned": total,
        "averageLevel": float(average or 0),
        "levelDistribution": [
            {"level": level, "count": count, "description": level_description(level)}
            for level, count in distribution
        ],
    })


# ── Lessons and Q&A items ─────────────────────────────────────────────────────

@app.route("/api/lessons")
def list_lessons():
    user_id = request.args.get("userId", type=int)
    if user_id is None:
        return jsonify({"error": "userId is required and must be a number"}), 400
    lessons = db.session.execute(
        select(Lesson).filter_by(user_id=user_id).order_by(Lesson.order)
    ).scalars().all()
    return jsonify({"lessons": [lesson.to_dict() for lesson in lessons]})


@app.route("/api/lessons/<lesson_id>")
def get_lesson(lesson_id):
    lesson = db.get_or_404(Lesson, lesson_id, description="Lesson not found")
    return jsonify({"lesson": lesson.to_dict()})


@app.route("/api/lessons", methods=["POST"])
def create_lesson():
    data = json_body()
    title = data.get("title")
    order = data.get("order")
    user_id = data.get("userId")
    if not is_nonempty_str(title) or order is None or not user_id:
        return jsonify({"error": "title, order, and userId are required"}), 400
    if not is_int(order) or not is_int(user_id):
        return jsonify({"error": "order and userId must be integers"}), 400
    db.get_or_404(User, user_id, description="User not found")
    lesson = Lesson(title=title, description=data.get("description"), order=order, user_id=user_id)
    db.session.add(lesson)
    db.session.commit()
    return jsonify({"lesson": lesson.to_dict()}), 201


@app.route("/api/lessons/<lesson_id>", methods=["PUT"])
def update_lesson(lesson_id):
    lesson = db.get_or_404(Lesson, lesson_id, description="Lesson not found")
    data = json_body()
    if "title" in data and not is_nonempty_str(data["title"]):
        return jsonify({"error": "title cannot be empty"}), 400
    if "order" in data and not is_int(data["order"]):
        return jsonify({"error": "order must be an integer"}), 400
    for key in ("title", "description", "order"):
        if key in data:
            setattr(lesson, key, data[key])
    db.session.commit()
    return jsonify({"lesson": lesson.to_dict()})


@app.route("/api/lessons/<lesson_id>", methods=["DELETE"])
def delete_lesson(lesson_id):
    lesson = db.get_or_404(Lesson, lesson_id, description="Lesson not found")
    db.session.delete(lesson)
    db.session.commit()
    return jsonify({"message": "Lesson deleted successfully"})


@app.route("/api/lessons/<lesson_id>/qa-items", methods=["POST"])
def create_qa_item(lesson_id):
    data = json_body()
    question = data.get("question")
    answer = data.get("answer")
    order = data.get("order")
    if not is_nonempty_str(question) or not is_nonempty_str(answer) or order is None:
        return jsonify({"error": "question, answer, and order are required"}), 400
    if not is_int(order):
        return jsonify({"error": "order must be an integer"}), 400
    db.get_or_404(Lesson, lesson_id, description="Lesson not found")
    qa_item = QAItem(question=question, answer=answer, order=order, lesson_id=lesson_id)
    db.session.add(qa_item)
    db.session.commit()
    return jsonify({"qaItem": qa_item.to_dict()}), 201


@app.route("/api/lessons/<lesson_id>/qa-items/reorder", methods=["PUT"])
def reorder_qa_items(lesson_id):
    items = json_body().get("items")
    if not isinstance(items, list):
        return jsonify({"error": "items array is required"}), 400
    if not all(isinstance(i, dict) and is_nonempty_str(i.get("id")) and is_int(i.get("order")) for i in items):
        return jsonify({"error": "each item needs an id and an integer order"}), 400

    db.get_or_404(Lesson, lesson_id, description="Lesson not found")
    wanted = {i["id"]: i["order"] for i in items}
    found = db.session.execute(
        select(QAItem).where(QAItem.lesson_id == lesson_id, QAItem.id.in_(wanted))
    ).scalars().all()
    if len(found) != len(wanted):
        return jsonify({"error": "QA item not found"}), 404
    for qa_item in found:
        qa_item.order = wanted[qa_item.id]
    db.session.commit()
    return jsonify({"message": "QA items reordered successfully"})


@app.route("/api/qa-items/<qa_item_id>", methods=["PUT"])
def update_qa_item(qa_item_id):
    qa_item = db.get_or_404(QAItem, qa_item_id, description="QA item not found")
    data = json_body()
    if any(key in data and not is_nonempty_str(data[key]) for key in ("question", "answer")):
        return jsonify({"error": "question and answer cannot be empty"}), 400
    if "order" in data and not is_int(data["order"]):
        return jsonify({"error": "order must be an integer"}), 400
    for key in ("question", "answer", "order"):
        if key in data:
            setattr(qa_item, key, data[key])
    db.session.commit()
    return jsonify({"qaItem": qa_item.to_dict()})


@app.route("/api/qa-items/<qa_item_id>", methods=["DELETE"])
def delete_qa_item(qa_item_id):
    qa_item = db.get_or_404(QAItem, qa_item_id, description="QA item not found")
    db.session.delete(qa_item)
    db.session.commit()
    return jsonify({"message": "QA item deleted successfully"})


# ── Callan practice progress ──────────────────────────────────────────────────

@app.route("/api/callan/progress", methods=["POST"])
def record_callan_progress():
    data = json_body()
    user_id = data.get("userId")
    qa_item_id = data.get("qaItemId")
    mode = data.get("mode")
    is_correct = data.get("isCorrect")

    if not is_int(user_id):
        return jsonify({"error": "userId must be an integer"}), 400
    if not is_nonempty_str(qa_item_id):
        return jsonify({"error": "qaItemId is required"}), 400
    if mode not in MODES:
        return jsonify({"error": f"mode must be one of: {', '.join(MODES)}"}), 400
    if not isinstance(is_correct, bool):
        return jsonify({"error": "isCorrect must be a boolean"}), 400

    db.get_or_404(QAItem, qa_item_id, description="QA item not found")
    db.get_or_404(User, user_id, description="User not found")

    progress = get_store().record_callan_attempt(user_id, qa_item_id, mode, is_correct)
    db.session.commit()
    return jsonify({"progress": progress.to_dict()})


@app.route("/api/callan/progress/summary")
def callan_progress_summary():
    user_id = request.args.get("userId", type=int)
    if user_id is None:
        return jsonify({"error": "userId query parameter is required"}), 400
    return jsonify(callan_summary(get_store(), user_id))


@app.route("/api/callan/progress/<lesson_id>")
def lesson_callan_progress(lesson_id):
    user_id = request.args.get("userId", type=int)
    if user_id is None:
        return jsonify({"error": "userId query parameter is required"}), 400
    mode = request.args.get("mode")
    rows = get_store().callan_rows(user_id, lesson_id=lesson_id, mode=mode if mode in MODES else None)
    return jsonify({"progress": [row.to_dict(include_item=True) for row in rows]})


# ── Listening comprehension ───────────────────────────────────────────────────

@app.route("/api/listening/passages")
def list_passages():
    query = select(ListeningPassage).order_by(ListeningPassage.order)
    difficulty = request.args.get("difficulty")
    if difficulty in VALID_DIFFICULTIES:
        query = query.filter_by(difficulty=difficulty)
    passages = db.session.execute(query).scalars().all()
    return jsonify({"passages": [p.to_dict() for p in passages]})


@app.route("/api/listening/passages/<passage_id>")
def get_passage(passage_id):
    passage = db.get_or_404(ListeningPassage, passage_id, description="Passage not found")
    return jsonify({"passage": passage.to_dict(full_questions=True)})


@app.route("/api/listening/progress", methods=["POST"])
def record_listening_progress():
    data = json_body()
    user_id = data.get("userId")
    question_id = data.get("questionId")
    is_correct = data.get("isCorrect")

    if not is_int(user_id):
        return jsonify({"error": "userId must be an integer"}), 400
    if not is_nonempty_str(question_id):
        return jsonify({"error": "questionId is required"}), 400
    if not isinstance(is_correct, bool):
        return jsonify({"error": "isCorrect must be a boolean"}), 400

    db.get_or_404(ListeningQuestion, question_id, description="Question not found")
    db.get_or_404(User, user_id, description="User not found")

    progress = get_store().record_listening_answer(user_id, question_id, is_correct)
    db.session.commit()
    return jsonify({"progress": progress.to_dict()})


@app.route("/api/listening/progress/summary")
def listening_progress_summary():
    user_id = request.args.get("userId", type=int)
    if user_id is None:
        return jsonify({"error": "userId query parameter is required"}), 400
    return jsonify(listening_summary(get_store(), user_id))


# ── Sound changes ─────────────────────────────────────────────────────────────

@app.route("/api/sound-changes/categories")
def list_sound_change_categories():
    categories = db.session.execute(
        select(SoundChangeCategory).order_by(SoundChangeCategory.order)
    ).scalars().all()
    return jsonify({"categories": [c.to_dict() for c in categories]})


@app.route("/api/sound-changes/categories/<slug>")
def get_sound_change_category(slug):
    category = db.first_or_404(select(SoundChangeCategory).filter_by(slug=slug), description="Category not found")
    return jsonify({"category": category.to_dict(include_items=True)})


@app.route("/api/sound-changes/exercises/<exercise_id>")
def get_sound_change_exercise(exercise_id):
    exercise = db.get_or_404(SoundChangeExercise, exercise_id, description="Exercise not found")
    data = exercise.to_dict()
    data["category"] = {
        "name": exercise.category.name,
        "nameJa": exercise.category.name_ja,
        "slug": exercise.category.slug,
    }
    data["items"] = [item.to_dict() for item in exercise.items]
    return jsonify({"exercise": data})


@app.route("/api/sound-changes/progress", methods=["POST"])
def record_sound_change_progress():
    data = json_body()
    user_id = data.get("userId")
    item_id = data.get("itemId")
    accuracy = data.get("accuracy")
    is_correct = data.get("isCorrect")

    if not is_int(user_id):
        return jsonify({"error": "userId must be an integer"}), 400
    if not is_nonempty_str(item_id):
        return jsonify({"error": "itemId is required"}), 400
    if not is_number(accuracy) or not math.isfinite(accuracy) or accuracy < 0 or accuracy > 100:
        return jsonify({"error": "accuracy must be a number between 0 and 100"}), 400
    if not isinstance(is_correct, bool):
        return jsonify({"error": "isCorrect must be a boolean"}), 400

    db.get_or_404(SoundChangeExerciseItem, item_id, description="Exercise item not found")
    db.get_or_404(User, user_id, description="User not found")

    progress = get_store().record_sound_change_answer(user_id, item_id, math.floor(accuracy + 0.5), is_correct)
    db.session.commit()
    return jsonify({"progress": progress.to_dict()})


@app.route("/api/sound-changes/progress/summary")
def sound_change_progress_summary():
    user_id = request.args.get("userId", type=int)
    if user_id is None:
        return jsonify({"error": "userId query parameter is required"}), 400
    return jsonify(sound_change_summary(get_store(), user_id))


with app.app_context():
    db.create_all()

if __name__ == "__main__":
    app.run(port=int(os.environ.get("PORT", 3001)), debug=True)
