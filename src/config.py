import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Base configuration class."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = 86400  # 24 hours
    
    # Redis cache configuration
    REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/0')
    CACHE_ENABLED = os.environ.get('CACHE_ENABLED', 'true').lower() == 'true'
    RUNNING_SCHEDULES_CACHE_TTL = int(os.environ.get('RUNNING_SCHEDULES_CACHE_TTL', '300'))
    
    # Scheduling configuration
    DEFAULT_ACTIONS_PER_HOUR = int(os.environ.get('DEFAULT_ACTIONS_PER_HOUR', '30'))
    MAX_ACTIONS_PER_HOUR = int(os.environ.get('MAX_ACTIONS_PER_HOUR', '30'))
    RUNNING_JOBS_LIMIT = int(os.environ.get('RUNNING_JOBS_LIMIT', '50'))
    SCHEDULE_TIMEZONE = os.environ.get('SCHEDULE_TIMEZONE', 'UTC')  # IANA timezone for daily quota windows
    UNLIMITED_QUOTA_CEILING = int(os.environ.get('UNLIMITED_QUOTA_CEILING', '1000000000'))
    QUOTA_WRITE_RETRIES = int(os.environ.get('QUOTA_WRITE_RETRIES', '3'))
    DUE_TASK_LOOKAHEAD_SECONDS = int(os.environ.get('DUE_TASK_LOOKAHEAD_SECONDS', '60'))
    
    # CORS configuration
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
    
    # Logging configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///outreach_scheduler.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = True
    
    # Development-specific settings
    TESTING = False


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    
    # Production database (PostgreSQL)
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    
    # Production security settings
    SECRET_KEY = os.environ.get('SECRET_KEY')
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY')
    
    # Production CORS (more restrictive)
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '').split(',')
    
    @classmethod
    def validate_config(cls):
        """Validate production configuration."""
        if not cls.SQLALCHEMY_DATABASE_URI:
            raise ValueError("DATABASE_URL environment variable is required for production")
        
        if not cls.SECRET_KEY:
            raise ValueError("SECRET_KEY environment variable is required for production")
        
        if not cls.JWT_SECRET_KEY:
            raise ValueError("JWT_SECRET_KEY environment variable is required for production")
        
        if not cls.CORS_ORIGINS or cls.CORS_ORIGINS == ['']:
            raise ValueError("CORS_ORIGINS environment variable is required for production")


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CACHE_ENABLED = False
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
