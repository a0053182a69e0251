import logging
import os
from typing import Optional
from uuid import UUID

from elasticsearch import ApiError, Elasticsearch, TransportError

ES_URL = os.environ.get("ELASTICSEARCH_URL")
_es_client: Optional[Elasticsearch] = None

if ES_URL:
    _es_client = Elasticsearch(ES_URL)

INDEX_NAME = "reqhub_entities"

logger = logging.getLogger(__name__)


def enabled() -> bool:
    return _es_client is not None


def _doc_id(entity_type: str, entity_id) -> str:
    return f"{entity_type}:{entity_id}"


def _document(entity_type: str, obj) -> dict:
    return {
        "id": str(obj.id),
        "entity_type": entity_type,
        "reference_id": obj.reference_id,
        "title": getattr(obj, "title", None),
        "description": obj.description,
        "status": getattr(obj, "status", None),
        "priority": getattr(obj, "priority", None),
    }


def index_entity(entity_type: str, obj) -> None:
    if not _es_client:
        return
    try:
        _es_client.index(
            index=INDEX_NAME,
            id=_doc_id(entity_type, obj.id),
            document=_document(entity_type, obj),
        )
    except (ApiError, TransportError):
        logger.warning(
            "failed to index entity",
            extra={"entity_type": entity_type, "entity_id": str(obj.id)},
            exc_info=True,
        )


def remove_entity(entity_type: str, entity_id) -> None:
    if not _es_client:
        return
    try:
        _es_client.options(ignore_status=404).delete(
            index=INDEX_NAME, id=_doc_id(entity_type, entity_id)
        )
    except (ApiError, TransportError):
        logger.warning(
            "failed to remove entity from index",
            extra={"entity_type": entity_type, "entity_id": str(entity_id)},
            exc_info=True,
        )


def search_ids(query: str, entity_types: list[str], size: int = 1000) -> Optional[dict[str, dict[UUID, float]]]:
    """Full text lookup returning ``{entity_type: {id: score}}``, or None without an index."""

    if not _es_client:
        return None
    try:
        res = _es_client.search(
            index=INDEX_NAME,
            size=size,
            query={
                "bool": {
                    "must": {
                        "multi_match": {
                            "query": query,
                            "fields": ["reference_id^3", "title^2", "description"],
                        }
                    },
                    "filter": {"terms": {"entity_type": entity_types}},
                }
            },
        )
    except (ApiError, TransportError):
        logger.warning("search index unavailable, using database search", exc_info=True)
        return None
    hits = res["hits"]["hits"]
    top = max((hit["_score"] or 0.0 for hit in hits), default=0.0) or 1.0
    found: dict[str, dict[UUID, float]] = {entity_type: {} for entity_type in entity_types}
    for hit in hits:
        source = hit["_source"]
        found.setdefault(source["entity_type"], {})[UUID(source["id"])] = (hit["_score"] or 0.0) / top
    return found
