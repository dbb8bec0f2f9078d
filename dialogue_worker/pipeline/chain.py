import time
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Sequence, Tuple

from ..providers.base import ProviderAdapter, ProviderUnavailable, ProviderChainExhausted

logger = logging.getLogger("dialogue_worker")


@dataclass
class ChainOutcome:
    """Successful result of a provider chain run"""
    value: Any
    provider: str
    position: int
    retry_count: int
    errors: List[Tuple[str, Exception]] = field(default_factory=list)


class RetryingProviderChain:
    """
    Try adapters in priority order with bounded retries per adapter.

    Each adapter gets max_retries + 1 attempts. Between attempts on the same
    adapter the chain sleeps retry_delay_ms * 2**attempt. An adapter raising
    ProviderUnavailable is skipped at once without consuming retries.
    """

    def __init__(self, max_retries: int = 2, retry_delay_ms: int = 1000,
                 sleep: Callable[[float], None] = time.sleep, label: str = "provider"):
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self.sleep = sleep
        self.label = label

    def run(self, adapters: Sequence[ProviderAdapter], operation: Callable[[ProviderAdapter], Any]) -> ChainOutcome:
        """
        Run operation against each adapter until one succeeds.

        Raises:
            ProviderChainExhausted: when every adapter failed or was unavailable
        """
        errors: List[Tuple[str, Exception]] = []
        retry_count = 0

        for position, adapter in enumerate(adapters):
            name = getattr(adapter, "name", type(adapter).__name__)

            if not adapter.is_configured():
                logger.warning(f"{self.label} {name} not configured, skipping")
                errors.append((name, ProviderUnavailable(name, "API key not configured")))
                continue

            for attempt in range(self.max_retries + 1):
                try:
                    logger.info(f"Attempting {self.label} {name} (attempt {attempt + 1})")
                    value = operation(adapter)
                    return ChainOutcome(
                        value=value,
                        provider=name,
                        position=position,
                        retry_count=retry_count,
                        errors=errors,
                    )
                except ProviderUnavailable as e:
                    logger.warning(f"{self.label} {name} unavailable: {e}")
                    errors.append((name, e))
                    break
                except Exception as e:
                    retry_count += 1
                    errors.append((name, e))
                    logger.warning(f"{self.label} {name} attempt {attempt + 1} failed: {e}")
                    if attempt < self.max_retries:
                        self.sleep(self.retry_delay_ms * (2 ** attempt) / 1000.0)

        raise ProviderChainExhausted(errors, retry_count=retry_count)
