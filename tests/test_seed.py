import json

import pytest
from sqlalchemy import select

import seed
from conftest import make_lesson
from models import (
    Lesson,
    ListeningPassage,
    SoundChangeCategory,
    SoundChangeExerciseItem,
    User,
    Word,
    db,
)


@pytest.fixture()
def runner(app):
    return app.test_cli_runner()


def write_json(tmp_path, name, data):
    path = tmp_path / name
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


CALLAN = {
    "stages": [
        {
            "title": "Stage 1",
            "lessons": [
                {"title": "Stage 1 - Lesson 1: This is a pen", "description": "Basics",
                 "qaItems": [{"question": "What's this?", "answer": "It's a pen."},
                             {"question": "Is this a pen?", "answer": "Yes, it is."}]},
                {"title": "Stage 1 - Lesson 2: Colours",
                 "qaItems": [{"question": "What colour is this?", "answer": "It's red."}]},
            ],
        }
    ]
}

LISTENING = {
    "passages": [
        {"title": "Morning routine", "text": "I wake up at seven.", "difficulty": "beginner", "topic": "daily",
         "questions": [{"type": "multiple_choice", "question": "When?", "options": ["six", "seven"],
                        "answer": "seven"},
                       {"type": "true_false", "question": "Is it late?", "answer": "false"}]},
    ]
}

SOUND_CHANGES = {
    "categories": [
        {"name": "Linking", "nameJa": "連結", "slug": "linking", "description": "Joined words",
         "exercises": [{"title": "Pick it up", "difficulty": "beginner",
                        "items": [{"type": "fill_blank", "audioPath": "/a/1.mp3", "sentence": "Pick ___ up",
                                   "blank": "it", "blankIndex": 1},
                                  {"type": "dictation", "audioPath": "/a/2.mp3", "sentence": "Check it out"}]}]},
    ]
}


def test_guess_part_of_speech():
    assert seed.guess_part_of_speech("nation") == "noun"
    assert seed.guess_part_of_speech("Organize") == "verb"
    assert seed.guess_part_of_speech("careful") == "adjective"
    assert seed.guess_part_of_speech("quickly") == "adverb"
    assert seed.guess_part_of_speech("be") == "verb"
    assert seed.guess_part_of_speech("the") is None


def test_seed_words(runner, tmp_path):
    path = tmp_path / "words.txt"
    path.write_text("the\nbe\n\nbe\nnation\n", encoding="utf-8")
    result = runner.invoke(args=["seed", "words", str(path)])
    assert result.exit_code == 0, result.output
    assert "Imported 3 words" in result.output

    words = db.session.execute(select(Word).order_by(Word.frequency)).scalars().all()
    assert [(w.word, w.frequency, w.part_of_speech) for w in words] == [
        ("the", 1, None),
        ("be", 2, "verb"),
        ("nation", 4, "noun"),
    ]
    assert db.session.execute(select(User).filter_by(email=seed.DEFAULT_USER_EMAIL)).scalar_one()


def test_seed_words_rejects_empty_file(runner, tmp_path):
    path = tmp_path / "empty.txt"
    path.write_text("\n\n", encoding="utf-8")
    result = runner.invoke(args=["seed", "words", str(path)])
    assert result.exit_code != 0
    assert "nothing to seed" in result.output


def test_missing_file(runner, tmp_path):
    result = runner.invoke(args=["seed", "listening", str(tmp_path / "nope.json")])
    assert result.exit_code != 0
    assert "Data file not found" in result.output


def test_seed_callan_replaces_only_callan_lessons(runner, tmp_path, user):
    make_lesson(user.id, title="Stage 9 - Lesson 9: Old", order=1)
    make_lesson(user.id, title="My own notes", order=5, questions=("Mine?",))

    result = runner.invoke(args=["seed", "callan", write_json(tmp_path, "callan.json", CALLAN)])
    assert result.exit_code == 0, result.output
    assert "Seeded 2 lessons with 3 QA items" in result.output

    lessons = db.session.execute(select(Lesson).order_by(Lesson.order)).scalars().all()
    assert [(lesson.order, lesson.title) for lesson in lessons] == [
        (1, "Stage 1 - Lesson 1: This is a pen"),
        (2, "Stage 1 - Lesson 2: Colours"),
        (5, "My own notes"),
    ]
    assert [qa.order for qa in lessons[0].qa_items] == [1, 2]


def test_seed_callan_needs_default_user(runner, tmp_path):
    result = runner.invoke(args=["seed", "callan", write_json(tmp_path, "callan.json", CALLAN)])
    assert result.exit_code != 0
    assert "Default user (ID=1) not found" in result.output


@pytest.mark.parametrize(
    "data, message",
    [
        ([], "must contain a JSON object"),
        ({"stages": []}, "no stages"),
        ({"stages": [{"title": "S1", "lessons": []}]}, 'Stage "S1" contains no lessons'),
        ({"stages": [{"title": "S1", "lessons": [{"title": "L1", "qaItems": []}]}]}, 'Lesson "L1" contains no QA'),
    ],
)
def test_validate_callan_data(data, message):
    with pytest.raises(seed.SeedDataError, match=message):
        seed.validate_callan_data(data)


def test_seed_listening(runner, tmp_path):
    result = runner.invoke(args=["seed", "listening", write_json(tmp_path, "listening.json", LISTENING)])
    assert result.exit_code == 0, result.output
    passage = db.session.execute(select(ListeningPassage)).scalar_one()
    assert passage.order == 1
    assert [q.to_dict()["options"] for q in passage.questions] == [["six", "seven"], None]


def test_invalid_listening_data_leaves_content_alone(runner, tmp_path):
    runner.invoke(args=["seed", "listening", write_json(tmp_path, "ok.json", LISTENING)])
    broken = {"passages": [dict(LISTENING["passages"][0], difficulty="expert")]}
    result = runner.invoke(args=["seed", "listening", write_json(tmp_path, "bad.json", broken)])
    assert result.exit_code != 0
    assert 'invalid difficulty "expert"' in result.output
    assert db.session.execute(select(ListeningPassage.title)).scalars().all() == ["Morning routine"]


def test_seed_sound_changes(runner, tmp_path):
    result = runner.invoke(args=["seed", "sound-changes", write_json(tmp_path, "sc.json", SOUND_CHANGES)])
    assert result.exit_code == 0, result.output
    assert "Seeded 1 categories, 1 exercises and 2 items" in result.output

    category = db.session.execute(select(SoundChangeCategory)).scalar_one()
    assert category.name_ja == "連結"
    items = db.session.execute(select(SoundChangeExerciseItem).order_by(SoundChangeExerciseItem.order)).scalars().all()
    assert [(i.type, i.blank, i.blank_index) for i in items] == [("fill_blank", "it", 1), ("dictation", None, None)]


@pytest.mark.parametrize(
    "item, message",
    [
        ({"type": "karaoke", "audioPath": "/a.mp3", "sentence": "x"}, 'invalid type "karaoke"'),
        ({"type": "dictation", "sentence": "x"}, "missing audioPath or sentence"),
        ({"type": "fill_blank", "audioPath": "/a.mp3", "sentence": "x", "blank": "it"}, "missing blank or blankIndex"),
    ],
)
def test_validate_sound_change_items(item, message):
    data = {"categories": [{"name": "Linking", "nameJa": "連結", "slug": "linking",
                            "exercises": [{"title": "E1", "difficulty": "beginner", "items": [item]}]}]}
    with pytest.raises(seed.SeedDataError, match=message):
        seed.validate_sound_change_data(data)


def test_fill_blank_index_zero_is_valid():
    item = {"type": "fill_blank", "audioPath": "/a.mp3", "sentence": "It is", "blank": "It", "blankIndex": 0}
    data = {"categories": [{"name": "Linking", "nameJa": "連結", "slug": "linking",
                            "exercises": [{"title": "E1", "difficulty": "beginner", "items": [item]}]}]}
    assert seed.validate_sound_change_data(data) is data


def test_load_source_downloads_urls(monkeypatch):
    class FakeResponse:
        text = "hello\nworld\n"

        def raise_for_status(self):
            pass

    calls = []

    def fake_get(url, timeout):
        calls.append(url)
        return FakeResponse()

    monkeypatch.setattr(seed.requests, "get", fake_get)
    assert seed.parse_word_list(seed.load_source("https://example.com/words.txt")) == ["hello", "world"]
    assert calls == ["https://example.com/words.txt"]
