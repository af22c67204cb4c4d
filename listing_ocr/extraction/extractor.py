"""Multi-strategy extraction over normalized listing text.

Runs every enabled parsing strategy over the full text and concatenates
their candidates in the canonical strategy order, whether the strategies
ran one after another or on a thread pool.
"""

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from listing_ocr.models import CandidateRecord, Strategy
from listing_ocr.utils.config import ExtractionConfig
from listing_ocr.utils.logger import get_logger

from .strategies import (
    extract_direct_column,
    extract_fixed_width_table,
    extract_line_context,
    extract_structured_pattern,
)

logger = get_logger(__name__)

StrategyFunction = Callable[[str], list[CandidateRecord]]

STRATEGY_FUNCTIONS: dict[Strategy, StrategyFunction] = {
    Strategy.DIRECT_COLUMN: extract_direct_column,
    Strategy.STRUCTURED_PATTERN: extract_structured_pattern,
    Strategy.FIXED_WIDTH_TABLE: extract_fixed_width_table,
    Strategy.LINE_CONTEXT: extract_line_context,
}


class MultiStrategyExtractor:
    """Applies the configured strategies to normalized text.

    Args:
        config: Extraction configuration selecting strategies and
            whether they run concurrently.
    """

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self.config = config or ExtractionConfig()
        self.strategies = [s for s in Strategy if s in self.config.strategies]

    def extract_by_strategy(self, text: str) -> dict[Strategy, list[CandidateRecord]]:
        """Run each strategy and keep its candidates separate.

        Args:
            text: Normalized OCR text.

        Returns:
            Candidates keyed by strategy, in execution order.
        """
        if self.config.run_concurrently and len(self.strategies) > 1:
            with ThreadPoolExecutor(
                max_workers=len(self.strategies), thread_name_prefix="strategy"
            ) as executor:
                futures = {
                    strategy: executor.submit(STRATEGY_FUNCTIONS[strategy], text)
                    for strategy in self.strategies
                }
                results = {
                    strategy: futures[strategy].result()
                    for strategy in self.strategies
                }
        else:
            results = {
                strategy: STRATEGY_FUNCTIONS[strategy](text)
                for strategy in self.strategies
            }

        for strategy, candidates in results.items():
            logger.debug(
                "Strategy %s produced %d candidates", strategy, len(candidates)
            )
        return results

    def extract(self, text: str) -> list[CandidateRecord]:
        """Concatenate every strategy's candidates in execution order."""
        by_strategy = self.extract_by_strategy(text)
        candidates = [c for s in self.strategies for c in by_strategy[s]]
        logger.info(
            "Extracted %d candidates with %d strategies",
            len(candidates),
            len(self.strategies),
        )
        return candidates
