"""
Kafka sink for DID discovery events
"""
import json
from typing import Any, Dict, Optional
from kafka import KafkaProducer
from kafka.errors import KafkaError
from loguru import logger

from ion_crawler.config import Config


class KafkaService:
    """Service responsible for Kafka operations"""

    def __init__(self, producer: Optional[KafkaProducer] = None, topic: Optional[str] = None):
        self._producer = producer
        self._topic = topic or Config.KAFKA_EVENTS_TOPIC

    def initialize_producer(self) -> None:
        """Initialize Kafka producer; acks from all replicas, with client-side retries"""
        if self._producer is not None:
            return
        try:
            self._producer = KafkaProducer(
                bootstrap_servers=Config.get_kafka_servers(),
                value_serializer=lambda v: v.encode('utf-8'),
                key_serializer=lambda k: k.encode('utf-8') if k else None,
                acks='all',
                retries=Config.KAFKA_SEND_RETRIES,
                max_in_flight_requests_per_connection=1
            )
            logger.info("Kafka producer initialized successfully")
        except KafkaError as e:
            logger.error(f"Failed to initialize Kafka producer: {e}")
            raise

    def send_message(self, key: str, value: str) -> None:
        """
        Send message to the events topic and wait for the broker acknowledgement

        Args:
            key: Message key
            value: Message value

        Raises:
            KafkaError: delivery was not confirmed after the producer's retries
        """
        if not self._producer:
            raise RuntimeError("Kafka producer not initialized")

        future = self._producer.send(self._topic, key=key, value=value)
        metadata = future.get(timeout=Config.KAFKA_SEND_TIMEOUT)
        logger.debug(f"Sent message to {self._topic}: {key} (partition={metadata.partition}, offset={metadata.offset})")

    def send_json_message(self, key: str, data: Dict[str, Any]) -> None:
        """
        Send JSON message to the events topic

        Args:
            key: Message key
            data: Data to serialize as JSON
        """
        self.send_message(key, json.dumps(data, sort_keys=True))

    def close(self) -> None:
        """Close Kafka connections"""
        try:
            if self._producer:
                self._producer.flush()
                self._producer.close()
                logger.info("Kafka producer closed")
        except KafkaError as e:
            logger.error(f"Error closing Kafka connections: {e}")
