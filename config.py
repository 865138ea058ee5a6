import os
from dotenv import load_dotenv

base_dir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(base_dir, '.env'))

class BaseConfig:
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-insecure')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///' + os.path.join(base_dir, 'wbsmaster.db'))
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOGIN_MAX_ATTEMPTS = int(os.getenv('LOGIN_MAX_ATTEMPTS', '5'))
    LOGIN_LOCK_SECONDS = int(os.getenv('LOGIN_LOCK_SECONDS', '300'))
    DEFAULT_PAGE_SIZE = int(os.getenv('DEFAULT_PAGE_SIZE', '50'))
    MAX_PAGE_SIZE = int(os.getenv('MAX_PAGE_SIZE', '500'))
    MAX_IMPORT_ROWS = int(os.getenv('MAX_IMPORT_ROWS', '5000'))
    CHAT_HISTORY_LIMIT = int(os.getenv('CHAT_HISTORY_LIMIT', '50'))
    # LLM defaults; per-user AI settings take precedence
    LLM_MODEL = os.getenv('LLM_MODEL', 'gpt-4o-mini')
    LLM_BASE_URL = os.getenv('LLM_BASE_URL')
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')

class ProductionConfig(BaseConfig):
    pass

class DevelopmentConfig(BaseConfig):
    DEBUG = True

class TestingConfig(BaseConfig):
    TESTING = True
    SECRET_KEY = 'test-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    OPENAI_API_KEY = None

config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
}

def get_config():
    env = os.getenv('FLASK_ENV', 'development').lower()
    return config_by_name.get(env, DevelopmentConfig)
