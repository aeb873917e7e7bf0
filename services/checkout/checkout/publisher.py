"""
Checkout Service — Redis Pub/Sub パブリッシャー

チェックアウトや在庫監査のイベントを Redis に発行する。
Redis Pub/Sub は fire-and-forget。購読者がいなければメッセージは消える。
"""

import json
import logging

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

CHECKOUT_CHANNEL = "checkout_events"
INVENTORY_CHANNEL = "inventory_events"


class RedisPublisher:
    """1 つのチャネルへ JSON メッセージを発行する。"""

    def __init__(self, redis: aioredis.Redis, channel: str):
        self.redis = redis
        self.channel = channel

    async def publish(self, event_type: str, data: dict) -> None:
        await self.redis.publish(
            self.channel,
            json.dumps({"event_type": event_type, "data": data}, default=str),
        )
        logger.debug("Published %s to %s", event_type, self.channel)
