"""Classification client: batching, failover and count reconciliation.

Every request handed to classify_batch gets exactly one response back,
tagged with the request's key. Responses are never matched to records by
position outside this module.
"""

import json
import random
import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence

from config import ClassificationPolicy, RetryPolicy
from errors import OracleError, OracleUnavailableError, PayloadParseError
from llm.parsing import ClassificationItem, parse_classifications
from llm.prompts.loader import PromptManager
from llm.providers.base import LLMProvider
from models.category import UNCATEGORIZED_ID, CategoryCatalog
from models.transaction import Transaction
from logger import get_logger

logger = get_logger()

PROMPT_NAME = "classification"


@dataclass
class ClassificationRequest:
    key: str
    description: str
    amount: Decimal
    date: date

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> "ClassificationRequest":
        return cls(
            key=transaction.correlation_key(),
            description=transaction.description,
            amount=transaction.amount,
            date=transaction.transaction_date,
        )


@dataclass
class ClassificationResponse:
    """One answer, tagged with the key of the request it belongs to.

    Ids are as the model gave them; validating them against the catalog is
    the caller's job.
    """

    key: str
    category_id: str
    subcategory_id: Optional[str]
    confidence: float
    reasoning: Optional[str] = None
    fallback: bool = False


class ClassificationClient:
    """Sends classification batches to the LLM with retry and failover.

    Args:
        provider: Performs single chat completions.
        deployments: Primary deployment first, then fallbacks.
        retry: Attempts per deployment and backoff shape.
        policy: Fallback confidence, bisection budget and reply size limits.
        prompt_manager: Source of the classification prompt.
        sleep: Called with the backoff delay in seconds.
        rng: Random source for jitter.
    """

    def __init__(
        self,
        provider: LLMProvider,
        deployments: Sequence[str],
        retry: Optional[RetryPolicy] = None,
        policy: Optional[ClassificationPolicy] = None,
        prompt_manager: Optional[PromptManager] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        if not deployments:
            raise ValueError("At least one deployment is required")
        self.provider = provider
        self.deployments = list(deployments)
        self.retry = retry or RetryPolicy()
        self.policy = policy or ClassificationPolicy()
        self.prompt_manager = prompt_manager or PromptManager()
        self.sleep = sleep
        self.rng = rng or random.Random()

    def classify_batch(
        self, requests: List[ClassificationRequest], catalog: CategoryCatalog
    ) -> List[ClassificationResponse]:
        """Classify a batch, one response per request in request order.

        Replies that cannot be reconciled with the batch are retried in halves
        until the bisection budget runs out, then one request at a time. A
        single request whose reply is still unusable gets an "uncategorized"
        fallback response.

        Raises:
            OracleUnavailableError: If every deployment failed for some call.
        """
        if not requests:
            return []
        logger.info(f"Classifying {len(requests)} transaction(s)")
        return self._classify(requests, catalog, self.policy.max_bisect_depth)

    def _classify(
        self,
        requests: List[ClassificationRequest],
        catalog: CategoryCatalog,
        depth_budget: int,
    ) -> List[ClassificationResponse]:
        rendered = self._render(requests, catalog)
        content = self._call(
            rendered["messages"],
            self._max_tokens(len(requests)),
            float(rendered["parameters"].get("temperature", 0)),
        )

        try:
            items = parse_classifications(content)
        except PayloadParseError as e:
            logger.warning(f"Could not parse reply for {len(requests)} request(s): {e}")
            items = []

        placed = self._reconcile(requests, items)
        responses: List[Optional[ClassificationResponse]] = [None] * len(requests)
        for position, item in placed.items():
            responses[position] = self._to_response(requests[position], item)

        missing = [i for i, r in enumerate(responses) if r is None]
        if not missing:
            return responses

        if len(requests) == 1:
            return [self._fallback(requests[0], "Reply could not be parsed")]

        logger.warning(
            f"Reply covered {len(requests) - len(missing)} of {len(requests)} request(s), "
            f"retrying the remainder"
        )
        remaining = [requests[i] for i in missing]
        if depth_budget <= 0 or len(remaining) == 1:
            retried = []
            for request in remaining:
                retried.extend(self._classify([request], catalog, 0))
        elif len(remaining) < len(requests):
            retried = self._classify(remaining, catalog, depth_budget - 1)
        else:
            mid = len(remaining) // 2
            retried = self._classify(remaining[:mid], catalog, depth_budget - 1)
            retried += self._classify(remaining[mid:], catalog, depth_budget - 1)

        for position, response in zip(missing, retried):
            responses[position] = response
        return responses

    def _reconcile(
        self, requests: List[ClassificationRequest], items: List[ClassificationItem]
    ) -> Dict[int, ClassificationItem]:
        """Map request positions to the reply items that answer them."""
        if not items:
            return {}

        if all(item.index is not None for item in items):
            indices = [item.index for item in items]
            # Some models count from one
            offset = 1 if 0 not in indices and max(indices) == len(requests) else 0
            placed = {}
            for item in items:
                position = item.index - offset
                if 0 <= position < len(requests) and position not in placed:
                    placed[position] = item
            if placed:
                return placed

        if len(items) == len(requests):
            return dict(enumerate(items))
        return {}

    def _to_response(
        self, request: ClassificationRequest, item: ClassificationItem
    ) -> ClassificationResponse:
        return ClassificationResponse(
            key=request.key,
            category_id=item.category_id or UNCATEGORIZED_ID,
            subcategory_id=item.subcategory_id,
            confidence=item.confidence,
            reasoning=item.reasoning,
        )

    def _fallback(self, request: ClassificationRequest, reason: str) -> ClassificationResponse:
        return ClassificationResponse(
            key=request.key,
            category_id=UNCATEGORIZED_ID,
            subcategory_id=None,
            confidence=self.policy.fallback_confidence,
            reasoning=reason,
            fallback=True,
        )

    def _max_tokens(self, count: int) -> int:
        policy = self.policy
        return min(policy.max_tokens_cap, policy.max_tokens_base + policy.max_tokens_per_item * count)

    def _render(
        self, requests: List[ClassificationRequest], catalog: CategoryCatalog
    ) -> Dict:
        transactions = [
            {
                "index": i,
                "description": r.description,
                "amount": str(r.amount),
                "date": r.date.isoformat(),
            }
            for i, r in enumerate(requests)
        ]
        return self.prompt_manager.render_messages(
            PROMPT_NAME,
            {
                "categories": _format_catalog(catalog),
                "transactions": json.dumps(transactions, indent=2),
                "count": len(requests),
            },
        )

    def _call(
        self, messages: List[Dict[str, str]], max_tokens: int, temperature: float = 0.0
    ) -> str:
        """Run one completion, retrying and failing over between deployments.

        Raises:
            OracleUnavailableError: If every deployment failed.
        """
        last_error: Optional[OracleError] = None

        for deployment in self.deployments:
            for attempt in range(1, self.retry.max_attempts + 1):
                try:
                    content = self.provider.complete(deployment, messages, max_tokens, temperature)
                    logger.debug(f"Reply from {deployment}: {content}")
                    return content
                except OracleError as e:
                    last_error = e
                    if not e.retryable:
                        logger.warning(f"{deployment} failed with non-retryable error: {e}")
                        break
                    if attempt < self.retry.max_attempts:
                        delay = self._backoff_delay(attempt, e.retry_after)
                        logger.warning(
                            f"{deployment} attempt {attempt}/{self.retry.max_attempts} failed: {e}; "
                            f"retrying in {delay:.1f}s"
                        )
                        self.sleep(delay)
                    else:
                        logger.warning(f"{deployment} failed after {attempt} attempt(s): {e}")
            logger.info(f"Deployment {deployment} exhausted, trying next")

        raise OracleUnavailableError(
            f"All {len(self.deployments)} deployment(s) failed", last_error=last_error
        )

    def _backoff_delay(self, attempt: int, retry_after: Optional[float]) -> float:
        """Exponential backoff with jitter; a retry-after hint is a floor."""
        delay = min(self.retry.max_delay_seconds, self.retry.base_delay_seconds * 2 ** (attempt - 1))
        delay += delay * self.retry.jitter * self.rng.random()
        if retry_after is not None:
            delay = max(delay, retry_after)
        return delay


def _format_catalog(catalog: CategoryCatalog) -> str:
    lines = [f"- {UNCATEGORIZED_ID}: Uncategorized"]
    for category in catalog:
        if category.id == UNCATEGORIZED_ID:
            continue
        lines.append(f"- {category.id}: {category.name} ({category.type})")
        for sub in category.subcategories:
            lines.append(f"    - {sub.id}: {sub.name}")
    return "\n".join(lines)
