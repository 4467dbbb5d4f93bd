"""
Turns discovered documents into events and hands them to the sink
"""
import asyncio

from kafka.errors import KafkaError
from loguru import logger

from ion_crawler.errors import PublishError
from ion_crawler.models import EVENT_TYPE_DID_DISCOVERED, DidDocument, EventEnvelope
from ion_crawler.services.kafka_service import KafkaService


class EventPublisherService:
    """
    Publishes one ``did-document-discovered`` event per document

    The document id is the event id, so consumers can drop redeliveries.
    """

    def __init__(self, kafka_service: KafkaService):
        self._kafka_service = kafka_service

    @staticmethod
    def build_envelope(document: DidDocument) -> EventEnvelope:
        return EventEnvelope(
            event_id=document.id,
            event_type=EVENT_TYPE_DID_DISCOVERED,
            occurred_at=document.observed_at,
            payload=document.payload,
        )

    async def publish(self, document: DidDocument) -> None:
        """
        Deliver the event for a document

        Raises:
            PublishError: the sink did not confirm delivery
        """
        envelope = self.build_envelope(document)
        try:
            await asyncio.to_thread(
                self._kafka_service.send_json_message, envelope.event_id, envelope.to_dict()
            )
        except (KafkaError, RuntimeError) as e:
            logger.error(f"Failed to publish event for {document.id}: {e}")
            raise PublishError(document.id, f"Failed to publish event for {document.id}: {e}") from e
        logger.info(f"Published event for {document.id}")
