import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    SECRET_KEY = os.getenv("SECRET_KEY")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    uri = os.getenv("DATABASE_URL", "sqlite:///balances.db")
    if uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)

    SQLALCHEMY_DATABASE_URI = uri

    # Balance engine
    DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "TRY")
    FETCH_WORKERS = int(os.getenv("FETCH_WORKERS", 4))  # 0 = fetch groups one by one
    UNKNOWN_USER_NAME = os.getenv("UNKNOWN_USER_NAME", "Unknown User")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    FETCH_WORKERS = 0
    LOG_LEVEL = "DEBUG"
