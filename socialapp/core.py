import os
import asyncio
import logging
from motor.motor_asyncio import AsyncIOMotorClient
from redis import asyncio as aioredis
from prometheus_client import Counter, start_http_server

from .exceptions import InternalError

logger = logging.getLogger(__name__)

MONGO_URL = os.getenv('MONGO_URL', 'mongodb://mongo:27017')
MONGO_DB_NAME = os.getenv('MONGO_DB_NAME', 'social_app')
MONGO_USE_TRANSACTIONS = os.getenv('MONGO_USE_TRANSACTIONS', 'false').lower() in ('1', 'true', 'yes')
METRICS_PORT = int(os.getenv('METRICS_PORT', '8001'))
REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')

MONGO = None
REDIS = None

RELATIONSHIP_OPERATIONS = Counter(
    'socialapp_relationship_operations',
    'Friend relationship mutations by operation and outcome',
    ['operation', 'outcome'],
)


def init_metrics(port: int = METRICS_PORT):
    """Initialize Prometheus metrics server"""
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except Exception as e:
        logger.warning(f'Prometheus start failed: {e}')


async def mongo_startup():
    """Start MongoDB connection with retries"""
    global MONGO

    max_retries = 3
    retry_delay = 3  # seconds

    for attempt in range(max_retries):
        try:
            logger.info(f"Attempting to connect to MongoDB: {MONGO_URL} (attempt {attempt + 1}/{max_retries})")

            MONGO = AsyncIOMotorClient(
                MONGO_URL,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=5000,
                socketTimeoutMS=5000,
                maxPoolSize=50,
                minPoolSize=5,
                retryWrites=True,
                retryReads=True
            )

            # Test the connection
            await MONGO.admin.command('ping')

            logger.info("MongoDB connected successfully")
            break

        except Exception as e:
            logger.warning(f'MongoDB startup attempt {attempt + 1} failed: {e}')
            if MONGO:
                MONGO.close()
                MONGO = None

            if attempt < max_retries - 1:
                logger.info(f"Retrying MongoDB connection in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error("Failed to connect to MongoDB after all retries")


async def redis_startup():
    """Start the Redis connection used for rate limit counters"""
    global REDIS

    max_retries = 3
    retry_delay = 3  # seconds

    for attempt in range(max_retries):
        try:
            logger.info(f"Attempting to connect to Redis: {REDIS_URL} (attempt {attempt + 1}/{max_retries})")

            REDIS = aioredis.from_url(
                REDIS_URL,
                decode_responses=False,
                max_connections=20,
                retry_on_timeout=True,
                health_check_interval=30,
                socket_connect_timeout=5,
                socket_timeout=5
            )

            # Test the connection
            await REDIS.ping()

            logger.info("Redis connected successfully")
            break

        except Exception as e:
            logger.warning(f'Redis startup attempt {attempt + 1} failed: {e}')
            if REDIS:
                await REDIS.aclose()
                REDIS = None

            if attempt < max_retries - 1:
                logger.info(f"Retrying Redis connection in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error("Failed to connect to Redis after all retries")


def get_database():
    if MONGO is None:
        raise InternalError('Storage unavailable')
    return MONGO[MONGO_DB_NAME]


async def shutdown_connections():
    """Gracefully shutdown all connections"""
    global MONGO, REDIS
    logger.info("Shutting down connections...")

    if REDIS:
        try:
            await REDIS.aclose()
            logger.info("Redis connection closed")
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}")
        REDIS = None

    if MONGO:
        try:
            MONGO.close()
            logger.info("MongoDB connection closed")
        except Exception as e:
            logger.error(f"Error closing MongoDB connection: {e}")
        MONGO = None
