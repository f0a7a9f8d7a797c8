import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    DATABASE_URL = os.environ.get('DATABASE_URL') or 'sqlite:///fitslot.db'
    SQLALCHEMY_DATABASE_URI = DATABASE_URL

    # Payment gateway
    STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY')
    STRIPE_WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET')

    # Booking Rules
    CANCELLATION_WINDOW_HOURS = int(os.environ.get('CANCELLATION_WINDOW_HOURS', '24'))
    MAX_ADVANCE_BOOKING_DAYS = int(os.environ.get('MAX_ADVANCE_BOOKING_DAYS', '90'))
    ADMIN_MAX_ADVANCE_BOOKING_DAYS = int(os.environ.get('ADMIN_MAX_ADVANCE_BOOKING_DAYS', '365'))
    PAST_SLOT_GRACE_MINUTES = int(os.environ.get('PAST_SLOT_GRACE_MINUTES', '15'))
    DEFAULT_RESERVATION_CREDITS = 1
    DEFAULT_SLOT_DURATION_MINUTES = 60

    # Token Settings
    ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 24 hours

    # Logging
    LOG_FILE = os.environ.get('LOG_FILE', 'logs/fitslot.log')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class DevelopmentConfig(Config):
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    DEBUG = True
    TESTING = True
    DATABASE_URL = 'sqlite:///test_fitslot.db'
    SQLALCHEMY_DATABASE_URI = DATABASE_URL


class ProductionConfig(Config):
    DEBUG = False
    TESTING = False


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
