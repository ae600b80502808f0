"""Multi-strategy document sampling."""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from docschema_mcp.store import Direction, DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderedStrategy:
    """Sample the documents that sort first by a field."""

    name: str
    order_by: str
    direction: Direction


@dataclass(frozen=True)
class FallbackEvent:
    """Record of a strategy replaced by the stride sample."""

    strategy: str
    reason: str


@dataclass
class SampleResult:
    """Deduplicated sample with the fallbacks taken to build it."""

    documents: list[dict[str, Any]] = field(default_factory=list)
    fallbacks: list[FallbackEvent] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when there is not enough data to infer anything."""
        return not self.documents


def deduplicate_documents(documents: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop documents whose id was already seen, keeping the first."""
    seen: set[str] = set()
    unique: list[dict[str, Any]] = []
    for document in documents:
        document_id = str(document.get("id"))
        if document_id in seen:
            continue
        seen.add(document_id)
        unique.append(document)
    return unique


class DocumentSampler:
    """Sample a collection with complementary orderings.

    A single "most recent N" sample misses fields that only exist on old
    or rarely updated documents, so the sample combines newest, oldest,
    recently updated and an unordered stride over the collection.
    """

    STRIDE = "stride"

    def __init__(
        self,
        store: DocumentStore,
        recent_field: str = "createdAt",
        updated_field: str = "updatedAt",
    ) -> None:
        """Initialize the sampler.

        Args:
            store: Document store to read from.
            recent_field: Creation timestamp field used for newest/oldest.
            updated_field: Update timestamp field used for recently updated.
        """
        self._store = store
        self._strategies = [
            OrderedStrategy("recent", recent_field, "desc"),
            OrderedStrategy("oldest", recent_field, "asc"),
            OrderedStrategy("updated", updated_field, "desc"),
        ]

    @property
    def strategy_names(self) -> list[str]:
        return [s.name for s in self._strategies] + [self.STRIDE]

    def sample(self, collection: str, target_size: int) -> list[dict[str, Any]]:
        """Get a deduplicated sample of raw documents.

        Args:
            collection: Collection name.
            target_size: Total document budget across strategies.

        Returns:
            Deduplicated documents; empty means insufficient data.
        """
        return self.sample_with_report(collection, target_size).documents

    def sample_with_report(self, collection: str, target_size: int) -> SampleResult:
        """Sample a collection and report which strategies fell back.

        Sub-queries run concurrently. A failing ordered strategy degrades
        to the stride sample instead of failing the whole call.
        """
        limit = max(1, math.ceil(target_size / 4))
        result = SampleResult()

        with ThreadPoolExecutor(max_workers=len(self._strategies) + 1) as executor:
            futures = [
                executor.submit(self._sample_ordered, collection, strategy, limit)
                for strategy in self._strategies
            ]
            futures.append(executor.submit(self.stride_sample, collection, limit))
            samples = [f.result() for f in futures]

        documents: list[dict[str, Any]] = []
        for sample in samples:
            if isinstance(sample, tuple):
                docs, event = sample
                if event is not None:
                    result.fallbacks.append(event)
                documents.extend(docs)
            else:
                documents.extend(sample)

        result.documents = deduplicate_documents(documents)
        logger.info(
            "Sampled %d unique document(s) from %s (%d fallback(s))",
            len(result.documents),
            collection,
            len(result.fallbacks),
        )
        if result.is_empty:
            logger.warning("No documents sampled from %s", collection)
        return result

    def _sample_ordered(
        self, collection: str, strategy: OrderedStrategy, limit: int
    ) -> tuple[list[dict[str, Any]], FallbackEvent | None]:
        try:
            documents = self._store.query(
                collection,
                order_by=strategy.order_by,
                direction=strategy.direction,
                limit=limit,
            )
        except Exception as e:
            reason = f"ordering by '{strategy.order_by}' failed: {e}"
        else:
            if documents:
                logger.debug(
                    "Strategy %s returned %d document(s) from %s",
                    strategy.name,
                    len(documents),
                    collection,
                )
                return documents, None
            reason = f"no documents carry '{strategy.order_by}'"

        logger.warning(
            "Sampling strategy %s on %s fell back to stride sample: %s",
            strategy.name,
            collection,
            reason,
        )
        return self.stride_sample(collection, limit), FallbackEvent(strategy.name, reason)

    def stride_sample(self, collection: str, limit: int) -> list[dict[str, Any]]:
        """Pseudo-random sample: fetch twice the limit, keep every Nth.

        Returns:
            Up to limit documents, or an empty list if the query fails.
        """
        try:
            documents = self._store.query(collection, limit=limit * 2)
        except Exception as e:
            logger.warning("Stride sample on %s failed: %s", collection, e)
            return []

        step = max(1, len(documents) // limit)
        return documents[::step][:limit]
