"""Process-level configuration for the authorization server."""

import os
from functools import lru_cache


class Config:
    """Configuration class with all process environment variables."""

    # Server Configuration
    SERVER_HOST: str = os.getenv('SERVER_HOST', '0.0.0.0')
    SERVER_PORT: str = os.getenv('SERVER_PORT', '9000')

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO').upper()
    LOG_COLORS: bool = os.getenv('LOG_COLORS', 'true').lower() == 'true'

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration values."""
        errors = []

        if not cls.SERVER_HOST:
            errors.append("SERVER_HOST is required")

        try:
            port = cls.port()
        except ValueError:
            errors.append(f"SERVER_PORT must be an integer, got {cls.SERVER_PORT!r}")
        else:
            if not (1 <= port <= 65535):
                errors.append(f"SERVER_PORT must be between 1 and 65535, got {port}")

        if cls.LOG_LEVEL not in {'TRACE', 'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}:
            errors.append(f"LOG_LEVEL must be a logging level name, got {cls.LOG_LEVEL}")

        if errors:
            raise ValueError(f"Configuration errors: {'; '.join(errors)}")

    @classmethod
    def port(cls) -> int:
        return int(cls.SERVER_PORT)

    @classmethod
    def bind_address(cls) -> str:
        """Return the host:port the ASGI server binds to."""
        return f"{cls.SERVER_HOST}:{cls.port()}"


@lru_cache()
def get_config() -> Config:
    """Get validated configuration instance."""
    Config.validate()
    return Config()
