"""
MongoDB connection (Motor).
"""
import logging
import time

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ReturnDocument

from config import settings

logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(settings.MONGO_URL)
db = client[settings.DB_NAME]


async def health_check() -> dict:
    """Ping the server and report round-trip latency."""
    started = time.perf_counter()
    await db.command("ping")
    return {
        "status": "connected",
        "database": settings.DB_NAME,
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
    }


async def next_sequence(name: str) -> int:
    counter = await db.counters.find_one_and_update(
        {"_id": name},
        {"$inc": {"value": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["value"]


async def create_indexes():
    await db.users.create_index("id", unique=True)
    await db.users.create_index("email", unique=True)
    await db.donors.create_index("id", unique=True)
    await db.donors.create_index("user_id")
    await db.donors.create_index("blood_type")
    await db.recipients.create_index("id", unique=True)
    await db.hospitals.create_index("id", unique=True)
    await db.hospitals.create_index("registration_number", unique=True)
    await db.blood_inventory.create_index("id", unique=True)
    await db.blood_inventory.create_index([("blood_type", 1), ("status", 1), ("expiry_date", 1)])
    await db.blood_requests.create_index("id", unique=True)
    await db.campaigns.create_index("id", unique=True)
    await db.notifications.create_index([("recipient_id", 1), ("created_at", -1)])
    await db.notifications.create_index("channels.sms.message_id")
    logger.info("Database indexes ensured")


def close():
    client.close()
