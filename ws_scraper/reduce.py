"""Batch mode: fold the card stream into a list or per-release boosters."""

from __future__ import annotations

import logging
from typing import AsyncIterator, Dict, List, Optional, Protocol

from ws_scraper.config import PipelineConfig, PoolConfig, ScrapeConfig
from ws_scraper.models import Booster, Card
from ws_scraper.pipeline import CardPipeline
from ws_scraper.pool import ProxyPool

logger = logging.getLogger(__name__)


class Reducer(Protocol):
    async def reduce(self, cards: AsyncIterator[Card]) -> None:
        """Consume the stream until it is closed."""
        ...


class CardListReducer:
    """Collects cards in arrival order."""

    def __init__(self) -> None:
        self.cards: List[Card] = []

    async def reduce(self, cards: AsyncIterator[Card]) -> None:
        async for card in cards:
            self.cards.append(card)


class BoosterReducer:
    """Groups cards by release code."""

    def __init__(self) -> None:
        self.boosters: Dict[str, Booster] = {}

    async def reduce(self, cards: AsyncIterator[Card]) -> None:
        async for card in cards:
            booster = self.boosters.get(card.release)
            if booster is None:
                booster = self.boosters[card.release] = Booster(release_code=card.release)
            booster.cards.append(card)


async def aggregate(
    config: ScrapeConfig,
    reducer: Reducer,
    pool: Optional[ProxyPool] = None,
    pipeline_config: Optional[PipelineConfig] = None,
    pool_config: Optional[PoolConfig] = None,
) -> CardPipeline:
    """Run a pipeline to completion through ``reducer``; returns the finished pipeline."""
    pipeline = CardPipeline(config, pool=pool, pipeline_config=pipeline_config, pool_config=pool_config)
    await reducer.reduce(pipeline.stream())
    if pipeline.failed_pages:
        logger.error("%d pages could not be scraped", len(pipeline.failed_pages))
    return pipeline


async def fetch_cards(
    config: ScrapeConfig,
    pool: Optional[ProxyPool] = None,
    pipeline_config: Optional[PipelineConfig] = None,
    pool_config: Optional[PoolConfig] = None,
) -> List[Card]:
    reducer = CardListReducer()
    await aggregate(config, reducer, pool, pipeline_config, pool_config)
    return reducer.cards


async def fetch_boosters(
    config: ScrapeConfig,
    pool: Optional[ProxyPool] = None,
    pipeline_config: Optional[PipelineConfig] = None,
    pool_config: Optional[PoolConfig] = None,
) -> Dict[str, Booster]:
    reducer = BoosterReducer()
    await aggregate(config, reducer, pool, pipeline_config, pool_config)
    return reducer.boosters
