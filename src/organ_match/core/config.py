"""
Centralized configuration management for the Organ Match Service
"""

import os
import json
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from functools import lru_cache

logger = logging.getLogger(__name__)

STORAGE_BACKENDS = ("memory", "mongodb")
SCORING_MODES = ("matching", "display")


@dataclass
class DatabaseConfig:
    """Database configuration settings"""
    backend: str = field(default_factory=lambda: os.getenv("STORAGE_BACKEND", "memory").lower())
    uri: str = field(default_factory=lambda: os.getenv("MONGODB_URI", "mongodb://localhost:27017"))
    name: str = field(default_factory=lambda: os.getenv("ORGAN_MATCH_DB", "organ_match"))
    max_pool_size: int = field(default_factory=lambda: int(os.getenv("MONGO_POOL_SIZE", "50")))
    min_pool_size: int = field(default_factory=lambda: int(os.getenv("MONGO_MIN_POOL_SIZE", "10")))
    max_idle_time_ms: int = field(default_factory=lambda: int(os.getenv("MONGO_MAX_IDLE_TIME_MS", "10000")))
    server_selection_timeout_ms: int = field(default_factory=lambda: int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000")))

    # Collection names
    donors_collection: str = "donors"
    recipients_collection: str = "recipients"
    matches_collection: str = "matches"
    metadata_collection: str = "metadata"


@dataclass
class RedisConfig:
    """Redis settings, used for the distributed matching lock"""
    lock_enabled: bool = field(default_factory=lambda: os.getenv("REDIS_LOCK_ENABLED", "false").lower() == "true")
    host: str = field(default_factory=lambda: os.getenv("REDIS_HOST", "localhost"))
    port: int = field(default_factory=lambda: int(os.getenv("REDIS_PORT", "6379")))
    password: Optional[str] = field(default_factory=lambda: os.getenv("REDIS_PASSWORD"))
    db: int = field(default_factory=lambda: int(os.getenv("REDIS_DB", "0")))
    max_connections: int = field(default_factory=lambda: int(os.getenv("REDIS_POOL_SIZE", "20")))
    socket_timeout: int = field(default_factory=lambda: int(os.getenv("REDIS_SOCKET_TIMEOUT", "30")))
    socket_connect_timeout: int = field(default_factory=lambda: int(os.getenv("REDIS_CONNECT_TIMEOUT", "30")))

    # Lock settings
    lock_name: str = field(default_factory=lambda: os.getenv("MATCHING_LOCK_NAME", "organ_match:matching_lock"))
    lock_timeout_seconds: int = field(default_factory=lambda: int(os.getenv("MATCHING_LOCK_TIMEOUT", "300")))
    lock_blocking_timeout_seconds: int = field(default_factory=lambda: int(os.getenv("MATCHING_LOCK_BLOCKING_TIMEOUT", "60")))


@dataclass
class MatchingConfig:
    """Matching and query settings"""
    default_page_limit: int = field(default_factory=lambda: int(os.getenv("DEFAULT_PAGE_LIMIT", "50")))
    max_page_limit: int = field(default_factory=lambda: int(os.getenv("MAX_PAGE_LIMIT", "500")))
    display_scoring_mode: str = field(default_factory=lambda: os.getenv("DISPLAY_SCORING_MODE", "display").lower())
    max_bulk_records: int = field(default_factory=lambda: int(os.getenv("MAX_BULK_RECORDS", "1000")))


@dataclass
class SecurityConfig:
    """Security configuration settings"""
    cors_origins: list = field(default_factory=lambda: os.getenv("CORS_ORIGINS", "*").split(","))
    cors_allow_credentials: bool = field(default_factory=lambda: os.getenv("CORS_ALLOW_CREDENTIALS", "true").lower() == "true")


@dataclass
class LoggingConfig:
    """Logging configuration settings"""
    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = field(default_factory=lambda: os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    # File logging
    log_file: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE"))
    max_file_size: int = field(default_factory=lambda: int(os.getenv("LOG_MAX_FILE_SIZE", "10485760")))  # 10MB
    backup_count: int = field(default_factory=lambda: int(os.getenv("LOG_BACKUP_COUNT", "5")))


@dataclass
class ApplicationConfig:
    """Main application configuration"""
    # Basic app settings
    app_name: str = field(default_factory=lambda: os.getenv("APP_NAME", "Organ Match Service"))
    app_version: str = field(default_factory=lambda: os.getenv("APP_VERSION", "1.0.0"))
    environment: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    # Server settings
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    workers: int = field(default_factory=lambda: int(os.getenv("WORKERS", "1")))

    # Component configurations
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        """Validate configuration after initialization"""
        self.validate()

    def validate(self):
        """Validate configuration settings"""
        errors = []

        # Database validation
        if self.database.backend not in STORAGE_BACKENDS:
            errors.append(f"Storage backend must be one of: {', '.join(STORAGE_BACKENDS)}")
        if self.database.backend == "mongodb":
            if not self.database.uri:
                errors.append("Database URI is required")
            if not self.database.name:
                errors.append("Database name is required")

        # Redis validation
        if self.redis.lock_enabled:
            if not self.redis.host:
                errors.append("Redis host is required")
            if not (1 <= self.redis.port <= 65535):
                errors.append("Redis port must be between 1 and 65535")
            if self.redis.lock_timeout_seconds <= 0:
                errors.append("Matching lock timeout must be positive")

        # Matching validation
        if self.matching.default_page_limit <= 0:
            errors.append("Default page limit must be positive")
        if self.matching.max_page_limit < self.matching.default_page_limit:
            errors.append("Max page limit must not be below the default page limit")
        if self.matching.display_scoring_mode not in SCORING_MODES:
            errors.append(f"Display scoring mode must be one of: {', '.join(SCORING_MODES)}")

        # Multiple workers only share one matching critical section through Redis
        if self.workers > 1 and not self.redis.lock_enabled:
            errors.append("Redis locking must be enabled when running more than one worker")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

    def get_database_collections(self) -> Dict[str, str]:
        """Get all database collection names"""
        return {
            "donors": self.database.donors_collection,
            "recipients": self.database.recipients_collection,
            "matches": self.database.matches_collection,
            "metadata": self.database.metadata_collection,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary (for logging/debugging)"""
        config_dict = {}
        for field_name, field_value in self.__dict__.items():
            if hasattr(field_value, '__dict__'):
                config_dict[field_name] = field_value.__dict__.copy()
                # Mask sensitive values
                if field_name == 'redis':
                    if config_dict[field_name].get('password'):
                        config_dict[field_name]['password'] = '***masked***'
            else:
                config_dict[field_name] = field_value
        return config_dict


@lru_cache(maxsize=1)
def get_config() -> ApplicationConfig:
    """
    Get application configuration singleton.
    Uses LRU cache to ensure same instance is returned.
    """
    config = ApplicationConfig()
    logger.info(f"Configuration loaded for environment: {config.environment}")
    return config


def load_config_from_file(file_path: str) -> ApplicationConfig:
    """
    Load configuration from a JSON file.

    Top-level keys map to environment variables directly, nested sections
    map to SECTION_KEY variables.
    """
    try:
        with open(file_path, 'r') as f:
            config_data = json.load(f)

        # Override environment variables with file values
        for key, value in config_data.items():
            if isinstance(value, dict):
                for sub_key, sub_value in value.items():
                    env_key = f"{key.upper()}_{sub_key.upper()}"
                    os.environ[env_key] = str(sub_value)
            else:
                os.environ[key.upper()] = str(value)

        # Clear cached config and reload
        get_config.cache_clear()
        return get_config()

    except FileNotFoundError:
        logger.error(f"Configuration file not found: {file_path}")
        raise
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in configuration file: {e}")
        raise


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure the root logger from the logging settings"""
    config = config or get_config().logging
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]
    if config.log_file:
        handlers.append(RotatingFileHandler(
            config.log_file,
            maxBytes=config.max_file_size,
            backupCount=config.backup_count
        ))

    logging.basicConfig(level=level, format=config.format, handlers=handlers, force=True)


# Convenience functions for common config access patterns
def get_database_config() -> DatabaseConfig:
    """Get database configuration"""
    return get_config().database


def get_redis_config() -> RedisConfig:
    """Get Redis configuration"""
    return get_config().redis


def get_matching_config() -> MatchingConfig:
    """Get matching configuration"""
    return get_config().matching
