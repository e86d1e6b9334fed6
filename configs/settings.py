"""
Settings factory and configuration management.
"""

import os
from typing import Type
from functools import lru_cache

from .environments.base import BaseConfig
from .environments.development import DevelopmentConfig
from .environments.production import ProductionConfig
from .environments.testing import TestingConfig
from utils.logging import get_logger

logger = get_logger(__name__)


def get_config_class() -> Type[BaseConfig]:
    """Get configuration class based on environment."""
    env = os.getenv("ENVIRONMENT", "development").lower()

    config_map = {
        "development": DevelopmentConfig,
        "production": ProductionConfig,
        "testing": TestingConfig,
        "test": TestingConfig,  # Alias for testing
    }

    return config_map.get(env, DevelopmentConfig)


@lru_cache()
def get_settings() -> BaseConfig:
    """Get cached settings instance."""
    config_class = get_config_class()
    return config_class()


def validate_settings(settings: BaseConfig = None) -> bool:
    """Validate settings and return True if valid."""
    settings = settings or get_settings()

    issues = settings.validate_thresholds()
    if issues:
        logger.error(f"Configuration issues: {', '.join(issues)}")
        return False

    # Additional production validation
    if isinstance(settings, ProductionConfig):
        production_issues = settings.validate_production_requirements()
        if production_issues:
            logger.error(f"Production validation issues: {', '.join(production_issues)}")
            return False

    return True
