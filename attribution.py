"""Per-opportunity attribution and batch analysis across opportunities."""

import asyncio
import logging
import threading
from typing import List, Optional

import config
from attribution_engine import AttributionEngine, sort_touchpoints
from exceptions import OpportunityFetchError
from models import AttributionResult, DateRange, Opportunity
from repository import TouchpointRepository

logger = logging.getLogger(__name__)


def build_attribution_result(
    opportunity: Opportunity,
    engine: Optional[AttributionEngine] = None
) -> AttributionResult:
    """
    Run every attribution model over one opportunity.

    Touchpoints are stable-sorted by timestamp first. An opportunity with no
    touchpoints gets empty credit maps for every model. Calling this twice on
    the same snapshot gives identical results.
    """
    engine = engine or AttributionEngine()
    ordered = sort_touchpoints(list(opportunity.touchpoints))

    return AttributionResult(
        opportunity_id=opportunity.id,
        opportunity_name=opportunity.name,
        total_value=opportunity.total_value,
        touchpoints=ordered,
        attribution=engine.calculate(ordered)
    )


class AttributionAnalyzer:
    """
    Attribution for every opportunity in a date window.

    Each opportunity is fetched in its own task; a fetch that fails or times
    out is logged and that opportunity is left out of the batch.

    Store reads run in worker threads. A timed-out read keeps its slot until
    the thread returns, so at most max_concurrency reads are ever in flight.
    """

    def __init__(
        self,
        repository: TouchpointRepository,
        engine: Optional[AttributionEngine] = None,
        fetch_timeout: float = config.FETCH_TIMEOUT_SECONDS,
        max_concurrency: int = config.FETCH_CONCURRENCY
    ):
        self.repository = repository
        self.engine = engine or AttributionEngine()
        self.fetch_timeout = fetch_timeout
        self.max_concurrency = max(1, max_concurrency)
        self._read_slots = threading.BoundedSemaphore(self.max_concurrency)

    async def analyze(
        self,
        tenant_id: str,
        date_range: DateRange,
        owner_id: Optional[str] = None,
        stage: Optional[str] = None
    ) -> List[AttributionResult]:
        """
        Attribution results for the tenant's won opportunities closed in range.

        Results keep enumeration order; opportunities whose fetch failed are
        missing from the list.
        """
        opportunity_ids = await asyncio.to_thread(
            self.repository.list_opportunity_ids, tenant_id, date_range, owner_id, stage
        )
        if not opportunity_ids:
            logger.info(f"Tenant {tenant_id}: no opportunities in {date_range.to_dict()}")
            return []

        opportunities = await self.fetch_all(opportunity_ids, date_range, tenant_id)
        results = [build_attribution_result(opp, self.engine) for opp in opportunities]

        logger.info(
            f"Tenant {tenant_id}: attributed {len(results)}/{len(opportunity_ids)} opportunities "
            f"({sum(1 for r in results if not r.has_touchpoints)} without touchpoints in range)"
        )
        return results

    async def fetch_all(
        self,
        opportunity_ids: List[str],
        date_range: DateRange,
        tenant_id: Optional[str] = None
    ) -> List[Opportunity]:
        """Fetch opportunities concurrently, dropping the ones that fail."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def fetch_one(opportunity_id: str) -> Optional[Opportunity]:
            async with semaphore:
                return await self._fetch_or_skip(opportunity_id, date_range, tenant_id)

        fetched = await asyncio.gather(*(fetch_one(opp_id) for opp_id in opportunity_ids))
        return [opp for opp in fetched if opp is not None]

    async def _fetch_or_skip(
        self,
        opportunity_id: str,
        date_range: DateRange,
        tenant_id: Optional[str]
    ) -> Optional[Opportunity]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(
                    self._fetch_blocking,
                    opportunity_id,
                    date_range,
                    tenant_id
                ),
                timeout=self.fetch_timeout
            )
        except OpportunityFetchError as e:
            logger.warning(f"Excluding opportunity {opportunity_id}: {e.message}")
        except asyncio.TimeoutError:
            logger.warning(f"Excluding opportunity {opportunity_id}: fetch timed out after {self.fetch_timeout}s")
        return None

    def _fetch_blocking(
        self,
        opportunity_id: str,
        date_range: DateRange,
        tenant_id: Optional[str]
    ) -> Opportunity:
        with self._read_slots:
            return self.repository.fetch_opportunity_touchpoints(opportunity_id, date_range, tenant_id)
