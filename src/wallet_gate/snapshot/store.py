"""Redis-backed key-value slot for the base64 snapshot envelope."""

from typing import Optional

from loguru import logger
from redis import asyncio as aioredis

from ..config import Config
from .envelope import (
    ConfigLike,
    ParsedSnapshot,
    SnapshotParseError,
    WalletConfig,
    decode_snapshot_b64,
    encode_snapshot_b64,
)


class SnapshotStore:
    """
    Persists the snapshot envelope in a single Redis key.

    Features:
    - Lazy Redis client initialization
    - Fail-safe load: unreachable Redis or a corrupt slot means a fresh session
    - Corrupt envelopes are discarded so they are not retried on every start
    """

    def __init__(self, key: Optional[str] = None, redis_url: Optional[str] = None):
        self.key = key or Config.SNAPSHOT_KEY
        self.redis_url = redis_url or Config.REDIS_URL
        self._redis_client: Optional[aioredis.Redis] = None

    async def _get_redis(self) -> aioredis.Redis:
        """
        Get or create the Redis client for the snapshot slot.

        Returns:
            Redis client decoding responses as text (the slot holds base64)
        """
        if self._redis_client is None:
            self._redis_client = aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=Config.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=Config.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
            )
            logger.debug(f"Snapshot store connected to {self.redis_url}")
        return self._redis_client

    async def close(self) -> None:
        """Close the Redis client, if one was opened."""
        if self._redis_client is not None:
            await self._redis_client.aclose()
            self._redis_client = None

    async def save(self, config: ConfigLike, wallet_snapshot: bytes) -> Optional[str]:
        """
        Serialize and store a version 3 envelope.

        Args:
            config: App configuration to persist
            wallet_snapshot: Opaque wallet engine snapshot

        Returns:
            The stored base64 text, or None if Redis was unavailable
        """
        encoded = encode_snapshot_b64(config, wallet_snapshot)
        try:
            redis = await self._get_redis()
            await redis.set(self.key, encoded)
            logger.info(f"Snapshot saved to slot {self.key} ({len(encoded)} chars)")
            return encoded
        except (aioredis.ConnectionError, aioredis.TimeoutError) as e:
            logger.error(f"Redis connection failed in save: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected error in save: {e}")
            return None

    async def load(self) -> Optional[ParsedSnapshot]:
        """
        Load and parse the stored envelope.

        Returns:
            ParsedSnapshot, or None if no usable snapshot exists
        """
        try:
            redis = await self._get_redis()
            encoded = await redis.get(self.key)
        except (aioredis.ConnectionError, aioredis.TimeoutError) as e:
            logger.error(f"Redis connection failed in load: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected error in load: {e}")
            return None

        if encoded is None:
            logger.debug(f"No snapshot found in slot {self.key}")
            return None
        if isinstance(encoded, bytes):
            encoded = encoded.decode("ascii", errors="replace")

        try:
            parsed = decode_snapshot_b64(encoded)
        except SnapshotParseError as e:
            logger.error(f"Couldn't load saved snapshot, discarding it: {e}")
            await self.clear()
            return None

        logger.info(
            f"Snapshot loaded (version {parsed.version}, "
            f"config {'present' if parsed.config is not None else 'absent'})"
        )
        return parsed

    async def restore_config(self) -> Optional[WalletConfig]:
        """Return the persisted app config, if the stored snapshot carries one."""
        parsed = await self.load()
        if parsed is None:
            return None
        return parsed.wallet_config()

    async def clear(self) -> bool:
        """
        Remove the stored snapshot.

        Returns:
            True if the slot is gone (or never existed), False on error
        """
        try:
            redis = await self._get_redis()
            await redis.delete(self.key)
            return True
        except (aioredis.ConnectionError, aioredis.TimeoutError) as e:
            logger.error(f"Redis connection failed in clear: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error in clear: {e}")
            return False
