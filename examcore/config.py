"""
Configuration settings for ExamCore
"""
import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Base configuration"""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///examcore.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Timer store settings
    TIMER_BACKEND = os.getenv('TIMER_BACKEND', 'redis')  # 'redis' or 'memory'
    REDIS_HOST = os.getenv('REDIS_HOST', 'localhost')
    REDIS_PORT = int(os.getenv('REDIS_PORT', 6379))
    REDIS_DB = int(os.getenv('REDIS_DB', 0))
    TIMER_KEY_PREFIX = os.getenv('TIMER_KEY_PREFIX', 'timer:')
    TIMER_SAVE_INTERVAL = int(os.getenv('TIMER_SAVE_INTERVAL', 10))  # seconds between saves
    TIMER_DEFAULT_TOTAL_SECONDS = int(os.getenv('TIMER_DEFAULT_TOTAL_SECONDS', 3600))

    # AI Engine settings
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
    DEEPSEEK_API_KEY = os.getenv('DEEPSEEK_API_KEY')
    OLLAMA_BASE_URL = os.getenv('OLLAMA_BASE_URL', 'http://localhost:11434')
    ACTIVE_AI_ENGINE = os.getenv('ACTIVE_AI_ENGINE', 'openai')
    ACTIVE_AI_MODEL = os.getenv('ACTIVE_AI_MODEL', 'gpt-4')
    GRADING_TEMPERATURE = float(os.getenv('GRADING_TEMPERATURE', 0.2))

    # Scoring
    SCORE_POLICY = os.getenv('SCORE_POLICY', 'max')  # 'max', 'sum' or 'reported'
    MAX_SCORE = float(os.getenv('MAX_SCORE', 10))

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    TIMER_BACKEND = 'memory'
    SCORE_POLICY = 'max'
    MAX_SCORE = 10.0


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
