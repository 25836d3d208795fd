import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///expenseflow.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = True
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "USD")
    EXCHANGE_API_URL = os.environ.get("EXCHANGE_API_URL", "https://api.exchangerate-api.com/v4/latest/{base}")
    CURRENCY_API_TIMEOUT = float(os.environ.get("CURRENCY_API_TIMEOUT", 10))
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite://")
    WTF_CSRF_ENABLED = False
    CURRENCY_API_TIMEOUT = 1
    LOG_LEVEL = "WARNING"


class ProductionConfig(Config):
    SECRET_KEY = os.environ.get("SECRET_KEY")


config_by_name = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}
