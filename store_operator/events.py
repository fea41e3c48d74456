"""
Event sink — Kubernetes events on the Store plus a Redis activity stream.

Fire-and-forget: a failure to record an event is logged and dropped, never
raised into the reconciliation pass.
"""
import json
import logging
from typing import Optional

import kopf
import redis

from store_operator.config import Settings, settings as default_settings
from store_operator.models import now

logger = logging.getLogger("store-operator.events")

STREAM_MAXLEN = 100
CHANNEL = "store:events"


def stream_key(store_name: str) -> str:
    return f"store:events:{store_name}"


class EventRecorder:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._redis: Optional[redis.Redis] = None

    def _get_redis(self) -> Optional[redis.Redis]:
        """Lazy-init Redis client. Returns None if disabled or unavailable."""
        if self._redis is not None:
            return self._redis
        if not self.settings.REDIS_URL:
            return None
        try:
            self._redis = redis.Redis.from_url(self.settings.REDIS_URL, decode_responses=True)
            self._redis.ping()
            logger.info(f"Redis connected: {self.settings.REDIS_URL}")
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable (non-fatal): {e}")
            self._redis = None
        return self._redis

    def normal(self, body: dict, reason: str, message: str):
        self.record(body, "Normal", reason, message)

    def warning(self, body: dict, reason: str, message: str):
        self.record(body, "Warning", reason, message)

    def record(self, body: dict, type_: str, reason: str, message: str):
        name = body.get("metadata", {}).get("name", "")
        try:
            kopf.event(body, type=type_, reason=reason, message=message)
        except Exception as e:
            logger.debug(f"[{name}] event post failed (non-fatal): {e}")
        self._publish(name, reason, message, body.get("status", {}).get("phase", ""))

    def _publish(self, store_name: str, event_type: str, message: str, phase: str):
        """Publish to the store's Redis stream and the global channel."""
        r = self._get_redis()
        if not r:
            return
        entry = {
            "type": event_type,
            "message": message,
            "phase": phase,
            "timestamp": now(),
            "store": store_name,
        }
        try:
            r.xadd(stream_key(store_name), entry, maxlen=STREAM_MAXLEN)
            r.publish(CHANNEL, json.dumps(entry))
        except redis.RedisError as e:
            logger.debug(f"Redis publish failed (non-fatal): {e}")

    def forget(self, store_name: str):
        """Drop a deleted store's activity stream."""
        r = self._get_redis()
        if not r:
            return
        try:
            r.delete(stream_key(store_name))
        except redis.RedisError as e:
            logger.debug(f"Redis stream cleanup failed (non-fatal): {e}")
