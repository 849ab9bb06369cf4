"""Centralized configuration for the wallet permission gate."""

import os
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """
    Wallet gate configuration with environment variable overrides.

    All configuration values are centralized here with sensible defaults.
    Values can be overridden via environment variables.
    """

    # ========================================================================
    # Arbitration
    # ========================================================================
    GROUP_GRACE_MS: int = int(os.getenv("GROUP_GRACE_MS", "20000"))

    # ========================================================================
    # Snapshot persistence
    # ========================================================================
    SNAPSHOT_KEY: str = os.getenv("SNAPSHOT_KEY", "snap")
    DEFAULT_USE_WAB: bool = _env_bool("DEFAULT_USE_WAB", True)
    DEFAULT_NETWORK: str = os.getenv("DEFAULT_NETWORK", "main")

    # ========================================================================
    # Logging
    # ========================================================================
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "")

    # ========================================================================
    # Redis Configuration
    # ========================================================================
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    REDIS_MAX_CONNECTIONS: int = int(os.getenv("REDIS_MAX_CONNECTIONS", "20"))
    REDIS_SOCKET_CONNECT_TIMEOUT: float = float(
        os.getenv("REDIS_SOCKET_CONNECT_TIMEOUT", "2")
    )
    REDIS_SOCKET_TIMEOUT: float = float(os.getenv("REDIS_SOCKET_TIMEOUT", "2"))

    # ========================================================================
    # Audit trail
    # ========================================================================
    AUDIT_LOG_PATH: str = os.getenv("AUDIT_LOG_PATH", "./audit.jsonl")
    AUDIT_RETENTION_DAYS: int = int(os.getenv("AUDIT_RETENTION_DAYS", "30"))
    AUDIT_ROTATION_BYTES: int = int(
        os.getenv("AUDIT_ROTATION_BYTES", str(10 * 1024 * 1024))
    )

    @classmethod
    def grace_seconds(cls, grace_ms: Optional[int] = None) -> float:
        """Grace window for unanswered group requests, in seconds."""
        if grace_ms is None:
            grace_ms = cls.GROUP_GRACE_MS
        return grace_ms / 1000.0

    @classmethod
    def validate(cls) -> bool:
        """
        Validate configuration consistency.

        Returns:
            True if validation passes

        Raises:
            ValueError: If validation fails
        """
        errors = []

        if cls.GROUP_GRACE_MS <= 0:
            errors.append(f"GROUP_GRACE_MS must be > 0, got {cls.GROUP_GRACE_MS}")

        if not cls.SNAPSHOT_KEY or not cls.SNAPSHOT_KEY.strip():
            errors.append("SNAPSHOT_KEY must not be empty")

        if cls.DEFAULT_NETWORK not in {"main", "test"}:
            errors.append(
                f"DEFAULT_NETWORK must be 'main' or 'test', got {cls.DEFAULT_NETWORK!r}"
            )

        if cls.REDIS_MAX_CONNECTIONS <= 0:
            errors.append(
                f"REDIS_MAX_CONNECTIONS must be > 0, got {cls.REDIS_MAX_CONNECTIONS}"
            )
        if cls.REDIS_SOCKET_CONNECT_TIMEOUT <= 0:
            errors.append(
                "REDIS_SOCKET_CONNECT_TIMEOUT must be > 0, "
                f"got {cls.REDIS_SOCKET_CONNECT_TIMEOUT}"
            )
        if cls.REDIS_SOCKET_TIMEOUT <= 0:
            errors.append(
                f"REDIS_SOCKET_TIMEOUT must be > 0, got {cls.REDIS_SOCKET_TIMEOUT}"
            )

        if cls.AUDIT_ROTATION_BYTES <= 0:
            errors.append(
                f"AUDIT_ROTATION_BYTES must be > 0, got {cls.AUDIT_ROTATION_BYTES}"
            )

        if errors:
            raise ValueError(f"Config validation failed: {'; '.join(errors)}")

        return True
