import os

basedir = os.path.abspath(os.path.dirname(__file__))


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-in-production")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(basedir, "english_trainer.db"),
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Owner of the seeded Callan lessons
    DEFAULT_USER_ID = int(os.environ.get("DEFAULT_USER_ID", 1))

    WORDS_PAGE_SIZE = 20
    WORDS_MAX_PAGE_SIZE = 100
    REVIEW_BATCH_SIZE = 20
    NEW_WORDS_BATCH_SIZE = 10
    RANDOM_WORDS_MAX_FREQUENCY = 3000
    NEW_WORDS_MAX_FREQUENCY = 1000
    SEARCH_RESULT_LIMIT = 20
