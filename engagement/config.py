import os
from dotenv import load_dotenv
import pytz

load_dotenv()

class Config:
    """Engagement engine configuration settings"""
    
    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///engagement.db')
    STORE_TIMEOUT_SECONDS = float(os.getenv('STORE_TIMEOUT_SECONDS', 5))
    
    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    
    # Calendar day boundaries are evaluated in this zone for every user
    TIMEZONE = os.getenv('TIMEZONE', 'UTC')
    
    # Leaderboard settings
    LEADERBOARD_CACHE_TTL = float(os.getenv('LEADERBOARD_CACHE_TTL', 5))
    LEADERBOARD_DEFAULT_LIMIT = int(os.getenv('LEADERBOARD_DEFAULT_LIMIT', 10))
    LEADERBOARD_MAX_LIMIT = int(os.getenv('LEADERBOARD_MAX_LIMIT', 100))
    
    # Housekeeping
    RECORD_RETENTION_DAYS = int(os.getenv('RECORD_RETENTION_DAYS', 7))
    
    @classmethod
    def get_timezone(cls):
        """Get the configured pytz time zone"""
        try:
            return pytz.timezone(cls.TIMEZONE)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"TIMEZONE '{cls.TIMEZONE}' is not a known time zone")
    
    @classmethod
    def validate(cls):
        """Validate that configuration values are usable"""
        cls.get_timezone()
        if cls.STORE_TIMEOUT_SECONDS <= 0:
            raise ValueError("STORE_TIMEOUT_SECONDS must be positive")
        if cls.LEADERBOARD_DEFAULT_LIMIT <= 0 or cls.LEADERBOARD_MAX_LIMIT <= 0:
            raise ValueError("Leaderboard limits must be positive")
        if cls.RECORD_RETENTION_DAYS < 1:
            raise ValueError("RECORD_RETENTION_DAYS must be at least 1")
