import asyncio
import logging
from contextlib import asynccontextmanager
from http import HTTPStatus

import aio_pika
from sqlalchemy.exc import SQLAlchemyError

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from src.fieldtrack.alerting import models as alerting_models  # noqa: F401
from src.fieldtrack.config import get_settings
from src.fieldtrack.daily_report import models as daily_report_models  # noqa: F401
from src.fieldtrack.daily_report.dependencies import get_daily_report_service
from src.fieldtrack.daily_report.routes import report_router
from src.fieldtrack.daily_report.scheduler import DailyReportScheduler
from src.fieldtrack.database.database import DatabaseManager, db
from src.fieldtrack.health_check.routes import health_router
from src.fieldtrack.logging_config import setup_logging
from src.fieldtrack.rabbitmq_handlers.telemetry.exceptions import (
    TelemetryDatabaseException,
)
from src.fieldtrack.rabbitmq_handlers.telemetry.handler import handle_telemetry_event
from src.fieldtrack.redis.redis import redis_manager

setup_logging()
logger = logging.getLogger(__name__)
settings = get_settings()
PROJECT_NAME = settings.PROJECT_NAME
ALL_CORS_ORIGINS = settings.all_cors_origins
TELEMETRY_QUEUE = settings.TELEMETRY_QUEUE
RABBITMQ_HOST = settings.RABBITMQ_HOST
RABBITMQ_PORT = settings.RABBITMQ_PORT
RABBITMQ_USER = settings.RABBITMQ_USER
RABBITMQ_PASSWORD = settings.RABBITMQ_PASSWORD
RABBITMQ_URL = (
    f"amqp://{RABBITMQ_USER}:{RABBITMQ_PASSWORD}@" f"{RABBITMQ_HOST}:{RABBITMQ_PORT}/"
)


async def init_db():
    # Model modules must be imported before this so their tables are registered
    await DatabaseManager.create_tables()


async def process_message(db_session, body: bytes):
    """Hand one message body to the telemetry handler. Raises only on a failed write."""
    if not body:
        return
    logger.debug("Consume telemetry event")
    try:
        await handle_telemetry_event(db_session, body)
    except TelemetryDatabaseException:
        raise
    except Exception as e:
        logger.error(f"[{TELEMETRY_QUEUE}] Dropped unprocessable message: {str(e)}")


async def consume_queue(queue):
    async with await db.get_client() as db_session:
        async with queue.iterator() as queue_iter:
            async for message in queue_iter:
                # Only a failed write rejects the message back onto the queue;
                # anything else is acked
                try:
                    async with message.process(requeue=True):
                        await process_message(db_session, message.body)
                except TelemetryDatabaseException as e:
                    logger.error(
                        f"[{TELEMETRY_QUEUE}] Failed to store message, requeued: "
                        f"{str(e)}"
                    )


async def ingest_events():
    connection = await aio_pika.connect_robust(RABBITMQ_URL)
    async with connection:
        channel = await connection.channel()

        # Declare the exchange (direct type for routing via routing key)
        exchange = await channel.declare_exchange(
            "events_exchange", aio_pika.ExchangeType.DIRECT, durable=True
        )

        queue = await channel.declare_queue(TELEMETRY_QUEUE, durable=True)
        await queue.bind(exchange, routing_key="telemetry")

        await consume_queue(queue)


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore
    try:
        await DatabaseManager.connect()
        await init_db()
        await redis_manager.init_redis()
        loop = asyncio.get_running_loop()
        report_scheduler = DailyReportScheduler(
            get_daily_report_service(),
            loop,
            finalize_time=settings.REPORT_FINALIZE_TIME,
            live_interval_minutes=settings.LIVE_EVALUATION_INTERVAL_MINUTES,
        )

        # Create background task for RabbitMQ consumer
        app.state.rabbitmq_consumer_task = asyncio.create_task(ingest_events())

        report_scheduler.run()

        logger.info("Startup complete")
        yield

        logger.info("Shutting down...")
        report_scheduler.stop()

        # Cancel the RabbitMQ consumer task
        app.state.rabbitmq_consumer_task.cancel()
        try:
            await app.state.rabbitmq_consumer_task
        except asyncio.CancelledError:
            logger.info("RabbitMQ consumer task cancelled.")

        await redis_manager.close_redis()
    except Exception as e:
        logger.error(f"Startup failed: {str(e)}")
        raise
    finally:
        await DatabaseManager.disconnect()
        logger.info("Shutdown complete")


app = FastAPI(title=PROJECT_NAME, version="0.1.0", lifespan=lifespan)


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    return JSONResponse(
        status_code=HTTPStatus.SERVICE_UNAVAILABLE,
        content={
            "detail": "Database connection error. Please try again later.",
            "error": str(exc),
        },
    )


# Set all CORS enabled origins
if ALL_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALL_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# API Routes
api_router = APIRouter(prefix="/api")
api_router.include_router(report_router)
app.include_router(api_router)
app.include_router(health_router)
