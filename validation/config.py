"""
Configuration validation for the queue.

Provides a pydantic-settings model for queue configuration with fail-fast
validation and sensible defaults. Values come from keyword arguments first,
then EVENTUAL_-prefixed environment variables, then the defaults below.
"""

from typing import Optional
import logging

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger('Eventual.config')


class QueueConfig(BaseSettings):
    """
    Queue configuration with validation.

    Optional tunables:
        namespace: Store namespace holding the queue (default: "jQueue")
        data_dir: Directory for the activity store (default: "./data")
        grace_expiry: TTL applied to malformed entries (default: 10.0, range: 1-3600)
        callback_timeout: Deadline per dispatched callback, None disables
                          (default: 300.0, range: 0.1-86400)
        max_attempts: Dispatches before a declining item is dead-lettered,
                      None retries forever (default: None, range: 1-1000)
        dead_letter_namespace: Namespace for dead letters (default: "<namespace>_dead")
        watch_interval: Seconds between arrival checks (default: 0.5, range: 0.05-60)
        watch_max_checks: Arrival checks before giving up (default: 6, range: 1-100)
        drain_interval: Seconds between periodic walks, None disables
                        (default: None, range: 1-86400)
        log_level: debug, notice, info, warning or error (default: "info")
        json_logs: Emit structured JSON log records (default: False)
    """

    model_config = SettingsConfigDict(env_prefix="EVENTUAL_")

    namespace: str = "jQueue"
    data_dir: str = "./data"

    grace_expiry: float = Field(default=10.0, ge=1.0, le=3600.0)
    callback_timeout: Optional[float] = Field(default=300.0, ge=0.1, le=86400.0)

    # Retry cap / dead letters
    max_attempts: Optional[int] = Field(default=None, ge=1, le=1000)
    dead_letter_namespace: Optional[str] = None

    # push(process_now=True) fallback polling
    watch_interval: float = Field(default=0.5, ge=0.05, le=60.0)
    watch_max_checks: int = Field(default=6, ge=1, le=100)

    drain_interval: Optional[float] = Field(default=None, ge=1.0, le=86400.0)

    log_level: str = "info"
    json_logs: bool = False

    @field_validator('namespace', 'dead_letter_namespace', mode='after')
    @classmethod
    def validate_namespace(cls, v: Optional[str]) -> Optional[str]:
        """Namespaces are key prefixes: non-empty and free of the '.' separator."""
        if v is None:
            return v
        if not v:
            raise ValueError('namespace must not be empty')
        if '.' in v:
            raise ValueError("namespace must not contain '.'")
        return v

    @field_validator('log_level', mode='before')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log_level is one of: debug, notice, info, warning, error."""
        valid = ('debug', 'notice', 'info', 'warning', 'error')
        if isinstance(v, str) and v.lower() in valid:
            return v.lower()
        raise ValueError(f"log_level must be one of {valid}, got: {v}")

    @property
    def dead_letters(self) -> str:
        """Effective dead-letter namespace."""
        return self.dead_letter_namespace or f"{self.namespace}_dead"

    def log_config(self) -> None:
        """Log the effective configuration."""
        retry = f"max_attempts={self.max_attempts}" if self.max_attempts else "max_attempts=unbounded"
        timeout = f"{self.callback_timeout}s" if self.callback_timeout is not None else "none"
        log.info(
            f"Queue config: namespace={self.namespace}, data_dir={self.data_dir}, "
            f"{retry}, callback_timeout={timeout}, grace_expiry={self.grace_expiry}s, "
            f"watch={self.watch_max_checks}x{self.watch_interval}s, "
            f"drain_interval={self.drain_interval}"
        )
        if self.max_attempts:
            log.info(f"Dead letters go to namespace '{self.dead_letters}'")


def validate_config(config_dict: dict) -> tuple[Optional[QueueConfig], Optional[str]]:
    """
    Validate configuration dictionary and return QueueConfig or error message.

    Args:
        config_dict: Dictionary containing configuration values

    Returns:
        Tuple of (QueueConfig, None) on success,
        or (None, error_message) on validation failure
    """
    try:
        config = QueueConfig(**config_dict)
        return (config, None)
    except ValidationError as e:
        # Extract user-friendly error messages
        errors = []
        for error in e.errors():
            field = '.'.join(str(loc) for loc in error['loc'])
            msg = error['msg']
            errors.append(f"{field}: {msg}")
        error_message = '; '.join(errors)
        return (None, error_message)


# Re-export ValidationError for external use
__all__ = ['QueueConfig', 'validate_config', 'ValidationError']
