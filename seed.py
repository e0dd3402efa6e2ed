"""
Content loaders, exposed as ``flask seed ...`` commands.

Every loader reads a local file or an http(s) URL, validates the whole
document before touching the database, then replaces its content in one
transaction.
"""
import json
import logging
import re

import click
import requests
from flask import current_app
from flask.cli import AppGroup
from sqlalchemy import delete, select

from models import (
    Lesson,
    ListeningPassage,
    ListeningProgress,
    ListeningQuestion,
    QAItem,
    SoundChangeCategory,
    SoundChangeExercise,
    SoundChangeExerciseItem,
    SoundChangeProgress,
    User,
    Word,
    WordProgress,
    db,
)

logger = logging.getLogger(__name__)

DEFAULT_USER_EMAIL = "test@example.com"
DEFAULT_USER_NAME = "Test User"

# Seeded Callan lessons are recognised by title, so hand-made lessons survive a reload
CALLAN_LESSON_PATTERN = re.compile(r"^Stage \d+ - Lesson \d+:")

VALID_DIFFICULTIES = ("beginner", "intermediate", "advanced")
VALID_ITEM_TYPES = ("fill_blank", "dictation")

seed_cli = AppGroup("seed", help="Load words, lessons and practice content.")


class SeedDataError(ValueError):
    pass


# ── Sources ───────────────────────────────────────────────────────────────────

def load_source(source):
    """Return the text at ``source``, a file path or an http(s) URL."""
    if source.startswith(("http://", "https://")):
        logger.info("Downloading %s", source)
        response = requests.get(source, timeout=30)
        response.raise_for_status()
        return response.text
    try:
        with open(source, encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError:
        raise SeedDataError(f"Data file not found: {source}") from None


def load_json(source):
    try:
        return json.loads(load_source(source))
    except json.JSONDecodeError as e:
        raise SeedDataError(f"Invalid JSON in {source}: {e}") from None


# ── Word list ─────────────────────────────────────────────────────────────────

COMMON_VERBS = {
    "be", "have", "do", "say", "get", "make", "go", "know", "take", "see", "come", "think",
    "look", "want", "give", "use", "find", "tell", "ask", "work", "seem", "feel", "try",
    "leave", "call", "keep", "let", "begin", "help", "show", "hear", "play", "run", "move",
    "live", "believe", "hold", "bring", "write", "sit", "stand", "lose", "pay", "meet",
    "include", "continue", "set", "learn", "change", "lead", "understand", "watch", "follow",
    "stop", "create", "speak", "read", "spend", "grow", "open", "walk", "win", "offer",
    "remember", "love", "consider", "appear", "buy", "wait", "serve", "die", "send", "expect",
    "build", "stay", "fall", "cut", "reach", "kill", "remain", "suggest", "raise", "pass",
    "sell", "require", "report", "decide", "pull",
}

COMMON_ADJECTIVES = {
    "good", "new", "first", "last", "long", "great", "little", "own", "other", "old", "right",
    "big", "high", "different", "small", "large", "next", "early", "young", "important", "few",
    "public", "bad", "same", "able", "best", "better", "sure", "free", "strong", "true",
    "whole", "real", "full", "clear", "easy", "hard", "possible", "special", "difficult",
    "single", "white", "black", "short", "red", "hot", "cold", "dark", "light", "fast", "slow",
    "happy", "sad", "angry", "beautiful", "ugly", "rich", "poor", "clean", "dirty", "safe",
    "dangerous", "quiet", "loud", "soft", "wet", "dry",
}

COMMON_NOUNS = {
    "time", "year", "people", "way", "day", "man", "woman", "child", "world", "life", "hand",
    "part", "place", "case", "week", "company", "system", "program", "question", "government",
    "number", "night", "point", "home", "water", "room", "mother", "area", "money", "story",
    "fact", "month", "lot", "study", "book", "eye", "job", "word", "business", "issue", "side",
    "kind", "head", "house", "service", "friend", "father", "power", "hour", "game", "line",
    "end", "member", "law", "car", "city", "community", "name", "president", "team", "minute",
    "idea", "kid", "body", "information", "back", "parent", "face", "others", "level",
    "office", "door", "health", "person", "art", "war", "history", "party", "result",
    "morning", "reason", "research", "girl", "guy", "moment", "air", "teacher", "force",
}


def guess_part_of_speech(word):
    """Rough part-of-speech guess from suffixes, then from short common-word lists."""
    w = word.lower()
    if w.endswith(("ate", "ize", "ify")):
        return "verb"
    if w.endswith(("tion", "ment", "ness", "ity", "ance", "ence")):
        return "noun"
    if w.endswith(("ful", "less", "ous", "ive", "able", "ible", "al")):
        return "adjective"
    if w.endswith("ly") and not w.endswith("ally"):
        return "adverb"
    if w in COMMON_VERBS:
        return "verb"
    if w in COMMON_ADJECTIVES:
        return "adjective"
    if w in COMMON_NOUNS:
        return "noun"
    return None


def parse_word_list(text):
    words = [line.strip() for line in text.splitlines() if line.strip()]
    if not words:
        raise SeedDataError("Word list is empty - nothing to seed")
    return words


def ensure_default_user():
    user = db.session.execute(select(User).filter_by(email=DEFAULT_USER_EMAIL)).scalar_one_or_none()
    if user is None:
        user = User(email=DEFAULT_USER_EMAIL, name=DEFAULT_USER_NAME)
        db.session.add(user)
        db.session.flush()
    return user


def seed_words(words):
    """Replace the vocabulary; a word's line position is its frequency rank."""
    db.session.execute(delete(WordProgress))
    db.session.execute(delete(Word))
    seen = set()
    for rank, word in enumerate(words, start=1):
        if word in seen:
            continue
        seen.add(word)
        db.session.add(Word(word=word, frequency=rank, part_of_speech=guess_part_of_speech(word)))
    ensure_default_user()
    return len(seen)


# ── Callan lessons ────────────────────────────────────────────────────────────

def validate_callan_data(data):
    if not isinstance(data, dict):
        raise SeedDataError("Data file must contain a JSON object")
    stages = data.get("stages")
    if not isinstance(stages, list):
        raise SeedDataError('Data file must contain a "stages" array')
    if not stages:
        raise SeedDataError("Data file contains no stages - nothing to seed")
    for i, stage in enumerate(stages, start=1):
        if not isinstance(stage, dict) or not stage.get("title") or not isinstance(stage.get("lessons"), list):
            raise SeedDataError(f"Stage {i} is missing required properties (title, lessons)")
        if not stage["lessons"]:
            raise SeedDataError(f'Stage "{stage["title"]}" contains no lessons')
        for j, lesson in enumerate(stage["lessons"], start=1):
            if not isinstance(lesson, dict) or not lesson.get("title") or not isinstance(lesson.get("qaItems"), list):
                raise SeedDataError(f'Lesson {j} in stage "{stage["title"]}" is missing required properties')
            if not lesson["qaItems"]:
                raise SeedDataError(f'Lesson "{lesson["title"]}" contains no QA items')
            for k, qa in enumerate(lesson["qaItems"], start=1):
                if not isinstance(qa, dict) or not qa.get("question") or not qa.get("answer"):
                    raise SeedDataError(f'QA item {k} in lesson "{lesson["title"]}" needs a question and an answer')
    return data


def seed_callan(data, user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise SeedDataError(f"Default user (ID={user_id}) not found. Run `flask seed words` first.")

    stale = [lesson for lesson in user.lessons if CALLAN_LESSON_PATTERN.match(lesson.title)]
    for lesson in stale:
        db.session.delete(lesson)
    if stale:
        logger.info("Deleted %d existing Callan lessons", len(stale))
    db.session.flush()

    lesson_count = item_count = 0
    for stage in data["stages"]:
        for lesson_data in stage["lessons"]:
            lesson_count += 1
            lesson = Lesson(
                title=lesson_data["title"],
                description=lesson_data.get("description"),
                order=lesson_count,
                user_id=user_id,
            )
            lesson.qa_items = [
                QAItem(question=qa["question"], answer=qa["answer"], order=k)
                for k, qa in enumerate(lesson_data["qaItems"], start=1)
            ]
            item_count += len(lesson.qa_items)
            db.session.add(lesson)
    return lesson_count, item_count


# ── Listening passages ────────────────────────────────────────────────────────

def validate_listening_data(data):
    if not isinstance(data, dict):
        raise SeedDataError("Data file must contain a JSON object")
    passages = data.get("passages")
    if not isinstance(passages, list):
        raise SeedDataError('Data file must contain a "passages" array')
    if not passages:
        raise SeedDataError("Data file contains no passages - nothing to seed")
    for i, passage in enumerate(passages, start=1):
        if not isinstance(passage, dict) or not all(passage.get(k) for k in ("title", "text", "difficulty")):
            raise SeedDataError(f"Passage {i} is missing required properties (title, text, difficulty)")
        if passage["difficulty"] not in VALID_DIFFICULTIES:
            raise SeedDataError(f'Passage "{passage["title"]}" has invalid difficulty "{passage["difficulty"]}"')
        questions = passage.get("questions")
        if not isinstance(questions, list) or not questions:
            raise SeedDataError(f'Passage "{passage["title"]}" must have at least one question')
        for j, q in enumerate(questions, start=1):
            if not isinstance(q, dict) or not all(q.get(k) for k in ("type", "question", "answer")):
                raise SeedDataError(f'Question {j} in "{passage["title"]}" is missing required properties')
    return data


def seed_listening(data):
    db.session.execute(delete(ListeningProgress))
    db.session.execute(delete(ListeningQuestion))
    db.session.execute(delete(ListeningPassage))

    question_count = 0
    for i, passage_data in enumerate(data["passages"], start=1):
        passage = ListeningPassage(
            title=passage_data["title"],
            text=passage_data["text"],
            difficulty=passage_data["difficulty"],
            topic=passage_data.get("topic"),
            order=i,
        )
        passage.questions = [
            ListeningQuestion(
                type=q["type"],
                question=q["question"],
                options=json.dumps(q["options"]) if q.get("options") else None,
                answer=q["answer"],
                order=j,
            )
            for j, q in enumerate(passage_data["questions"], start=1)
        ]
        question_count += len(passage.questions)
        db.session.add(passage)
    return len(data["passages"]), question_count


# ── Sound changes ─────────────────────────────────────────────────────────────

def validate_sound_change_data(data):
    if not isinstance(data, dict):
        raise SeedDataError("Data file must contain a JSON object")
    categories = data.get("categories")
    if not isinstance(categories, list):
        raise SeedDataError('Data file must contain a "categories" array')
    if not categories:
        raise SeedDataError("Data file contains no categories - nothing to seed")

    for i, category in enumerate(categories, start=1):
        if not isinstance(category, dict) or not all(category.get(k) for k in ("name", "nameJa", "slug")):
            raise SeedDataError(f"Category {i} is missing required properties (name, nameJa, slug)")
        exercises = category.get("exercises")
        if not isinstance(exercises, list) or not exercises:
            raise SeedDataError(f'Category "{category["name"]}" must have at least one exercise')

        for j, exercise in enumerate(exercises, start=1):
            if not isinstance(exercise, dict) or not exercise.get("title") or not exercise.get("difficulty"):
                raise SeedDataError(f'Exercise {j} in "{category["name"]}" is missing required properties')
            title = exercise["title"]
            if exercise["difficulty"] not in VALID_DIFFICULTIES:
                raise SeedDataError(f'Exercise "{title}" has invalid difficulty "{exercise["difficulty"]}"')
            items = exercise.get("items")
            if not isinstance(items, list) or not items:
                raise SeedDataError(f'Exercise "{title}" must have at least one item')

            for k, item in enumerate(items, start=1):
                if not isinstance(item, dict) or item.get("type") not in VALID_ITEM_TYPES:
                    kind = item.get("type") if isinstance(item, dict) else None
                    raise SeedDataError(f'Item {k} in "{title}" has invalid type "{kind}"')
                if not item.get("audioPath") or not item.get("sentence"):
                    raise SeedDataError(f'Item {k} in "{title}" is missing audioPath or sentence')
                if item["type"] == "fill_blank" and (not item.get("blank") or item.get("blankIndex") is None):
                    raise SeedDataError(f'Fill-blank item {k} in "{title}" is missing blank or blankIndex')
    return data


def seed_sound_changes(data):
    db.session.execute(delete(SoundChangeProgress))
    db.session.execute(delete(SoundChangeExerciseItem))
    db.session.execute(delete(SoundChangeExercise))
    db.session.execute(delete(SoundChangeCategory))

    exercise_count = item_count = 0
    for i, cat_data in enumerate(data["categories"], start=1):
        category = SoundChangeCategory(
            name=cat_data["name"],
            name_ja=cat_data["nameJa"],
            slug=cat_data["slug"],
            description=cat_data.get("description") or None,
            order=i,
        )
        for j, ex_data in enumerate(cat_data["exercises"], start=1):
            exercise = SoundChangeExercise(title=ex_data["title"], difficulty=ex_data["difficulty"], order=j)
            exercise.items = [
                SoundChangeExerciseItem(
                    type=item["type"],
                    audio_path=item["audioPath"],
                    sentence=item["sentence"],
                    blank=item.get("blank") or None,
                    blank_index=item.get("blankIndex"),
                    explanation=item.get("explanation") or None,
                    order=k,
                )
                for k, item in enumerate(ex_data["items"], start=1)
            ]
            category.exercises.append(exercise)
            exercise_count += 1
            item_count += len(exercise.items)
        db.session.add(category)
    return len(data["categories"]), exercise_count, item_count


# ── CLI ───────────────────────────────────────────────────────────────────────

def _run(loader, *args):
    """Run ``loader`` in one transaction, turning bad input into a CLI error."""
    try:
        result = loader(*args)
        db.session.commit()
    except SeedDataError as e:
        db.session.rollback()
        raise click.ClickException(str(e)) from None
    except Exception:
        db.session.rollback()
        raise
    return result


def _fetch(reader, source):
    try:
        return reader(source)
    except SeedDataError as e:
        raise click.ClickException(str(e)) from None
    except requests.RequestException as e:
        raise click.ClickException(f"Could not download {source}: {e}") from None


@seed_cli.command("words")
@click.argument("source")
def words_command(source):
    """Load a newline-separated word list, most frequent first."""
    words = _fetch(lambda s: parse_word_list(load_source(s)), source)
    click.echo(f"Found {len(words)} words to import")
    imported = _run(seed_words, words)
    click.echo(f"Imported {imported} words")


@seed_cli.command("callan")
@click.argument("source")
def callan_command(source):
    """Load Callan stages, lessons and Q&A items for the default user."""
    data = _fetch(lambda s: validate_callan_data(load_json(s)), source)
    lessons, items = _run(seed_callan, data, current_app.config["DEFAULT_USER_ID"])
    click.echo(f"Seeded {lessons} lessons with {items} QA items")


@seed_cli.command("listening")
@click.argument("source")
def listening_command(source):
    """Replace all listening passages and their questions."""
    data = _fetch(lambda s: validate_listening_data(load_json(s)), source)
    passages, questions = _run(seed_listening, data)
    click.echo(f"Seeded {passages} passages with {questions} questions")


@seed_cli.command("sound-changes")
@click.argument("source")
def sound_changes_command(source):
    """Replace all sound-change categories, exercises and items."""
    data = _fetch(lambda s: validate_sound_change_data(load_json(s)), source)
    categories, exercises, items = _run(seed_sound_changes, data)
    click.echo(f"Seeded {categories} categories, {exercises} exercises and {items} items")
