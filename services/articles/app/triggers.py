"""Publishing scraper and news-API run requests to their Redis stream topics."""

from datetime import datetime, timezone

import redis

from services.articles.app.errors import BadRequestError, QueuePublishError
from services.articles.app.metrics import TRIGGERS_PUBLISHED
from shared.app_logging.logger import get_logger
from shared.config.settings import Settings
from shared.schemas.messages import (
    NewsApiTriggerResponse,
    ScraperTriggerResponse,
    TriggerMessage,
    TriggerNewsApiRequest,
    TriggerScraperRequest,
)
from shared.utils.redis_client import RedisClient
from shared.utils.retry import RetryError, retry

logger = get_logger("articles.triggers")


class TriggerPublisher:
    def __init__(self, redis_client: RedisClient, settings: Settings):
        self.redis = redis_client
        self.settings = settings

    @retry(max_retries=2, base_delay=0.5, retryable_exceptions=(redis.exceptions.ConnectionError,))
    def _xadd(self, topic: str, fields: dict) -> str:
        return self.redis.xadd(topic, fields, maxlen=self.settings.queue.stream_max_length)

    def _publish(self, topic: str, message: TriggerMessage) -> str:
        try:
            message_id = self._xadd(topic, {"data": message.model_dump_json(), "kind": message.kind})
        except (RetryError, redis.exceptions.RedisError) as e:
            logger.error(f"Could not publish {message.kind} trigger to {topic}: {e}")
            raise QueuePublishError("Message queue unavailable", {"topic": topic}) from e
        TRIGGERS_PUBLISHED.labels(kind=message.kind).inc()
        logger.info(f"Published {message.kind} trigger {message_id} to {topic} for {message.triggered_by}")
        return message_id

    def trigger_scraper(self, request: TriggerScraperRequest, email: str) -> ScraperTriggerResponse:
        payload = request.model_dump()
        payload["collection_id"] = request.collection_id or request.region
        message = TriggerMessage(
            kind="scraper",
            triggered_by=email,
            requested_at=datetime.now(timezone.utc),
            payload=payload,
        )
        message_id = self._publish(self.settings.queue.scraper_topic, message)
        return ScraperTriggerResponse(
            messageId=message_id,
            triggeredBy=email,
            region=request.region,
            sourcesCount=len(request.urls),
        )

    def trigger_news_api(self, request: TriggerNewsApiRequest, email: str) -> NewsApiTriggerResponse:
        service = self.settings.service
        time_range = request.time_range or service.news_api_default_time_range
        if time_range not in service.news_api_time_ranges:
            raise BadRequestError(
                f"Unknown time_range '{time_range}'",
                {"time_range": time_range, "allowed": service.news_api_time_ranges},
            )
        message = TriggerMessage(
            kind="news_api",
            triggered_by=email,
            requested_at=datetime.now(timezone.utc),
            payload={
                "keywords": request.keywords,
                "time_range": time_range,
                "max_results": request.max_results or service.news_api_default_max_results,
            },
        )
        message_id = self._publish(self.settings.queue.news_api_topic, message)
        return NewsApiTriggerResponse(messageId=message_id, triggeredBy=email, keywords=request.keywords)
