"""
Selects the feed records the crawler cares about
"""
import base64
import binascii
import random
from datetime import datetime, timezone
from typing import Any, Optional, Set

from loguru import logger

from ion_crawler.config import CrawlerConfig
from ion_crawler.errors import MalformedRecordError
from ion_crawler.models import DidDocument


def decode_type_tag(tag: str) -> Optional[str]:
    """Decode a base64url type tag as written by ION ("Z3hp" -> "gxi")"""
    padded = tag + '=' * (-len(tag) % 4)
    try:
        return base64.b64decode(padded, altchars=b'-_', validate=True).decode('utf-8')
    except (binascii.Error, ValueError):
        return None


def _service_type(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    services = payload.get('service')
    if services is None and isinstance(payload.get('didDocument'), dict):
        services = payload['didDocument'].get('service')
    if not isinstance(services, list):
        return None
    for service in services:
        if isinstance(service, dict) and isinstance(service.get('type'), str):
            return service['type']
    return None


class DocumentFilterService:
    """Parses raw records and decides which documents are published"""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def parse(self, raw: Any, observed_at: datetime) -> DidDocument:
        """
        Turn a raw feed record into a DidDocument

        Raises:
            MalformedRecordError: the record has no usable id or type
        """
        if not isinstance(raw, dict):
            raise MalformedRecordError(f"Record is not an object: {type(raw).__name__}")

        payload = raw.get('document')
        document_id = raw.get('id')
        if not document_id and isinstance(payload, dict):
            document_id = payload.get('id')
        if not isinstance(document_id, str) or not document_id.strip():
            raise MalformedRecordError("Record has no id")
        document_id = document_id.strip()

        declared_type = raw.get('type')
        if declared_type is None:
            declared_type = _service_type(payload)
        if not isinstance(declared_type, str) or not declared_type:
            raise MalformedRecordError(f"Record {document_id} has no declared type", record_id=document_id)

        return DidDocument(id=document_id, type=declared_type, payload=payload, observed_at=observed_at)

    @staticmethod
    def type_candidates(declared_type: str) -> Set[str]:
        candidates = {declared_type}
        decoded = decode_type_tag(declared_type)
        if decoded:
            candidates.add(decoded)
        return candidates

    def accepts(self, document: DidDocument, config: CrawlerConfig) -> bool:
        if not self.type_candidates(document.type) & config.accepted_types:
            return False
        if config.sampling_enabled and self._rng.random() >= config.sampling_rate:
            logger.debug(f"Sampled out {document.id}")
            return False
        return True

    def matches(self, raw: Any, config: CrawlerConfig,
                observed_at: Optional[datetime] = None) -> Optional[DidDocument]:
        """Return the parsed document if it should be published, otherwise None; never raises"""
        try:
            document = self.parse(raw, observed_at or datetime.now(timezone.utc))
        except MalformedRecordError as e:
            logger.debug(f"Ignoring malformed record: {e}")
            return None
        return document if self.accepts(document, config) else None
