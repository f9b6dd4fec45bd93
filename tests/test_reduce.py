"""Tests for the batch reducers."""

import httpx
import respx

from ws_scraper.config import ScrapeConfig
from ws_scraper.models import Card
from ws_scraper.reduce import BoosterReducer, CardListReducer, aggregate, fetch_boosters, fetch_cards

JP = "https://ws-tcg.com"


async def _stream(cards):
    for card in cards:
        yield card


async def test_card_list_reducer_keeps_order():
    cards = [Card(card_number=f"BD/W63-00{i}", language="JP") for i in range(3)]
    reducer = CardListReducer()
    await reducer.reduce(_stream(cards))
    assert reducer.cards == cards


async def test_booster_reducer_groups_by_release():
    cards = [
        Card(card_number="BD/W63-001", language="JP", release="W63"),
        Card(card_number="BD/W73-001", language="JP", release="W73"),
        Card(card_number="BD/W63-002", language="JP", release="W63"),
    ]
    reducer = BoosterReducer()
    await reducer.reduce(_stream(cards))
    assert sorted(reducer.boosters) == ["W63", "W73"]
    assert [c.card_number for c in reducer.boosters["W63"].cards] == ["BD/W63-001", "BD/W63-002"]
    assert reducer.boosters["W73"].release_code == "W73"


def _mock_two_releases(respx_mock, jp_results_page):
    page = jp_results_page([1, 2], last_page=2)
    other = jp_results_page([3], last_page=2, release="W73")
    respx_mock.post("/cardlist/search", params={"page": "1"}).mock(return_value=httpx.Response(200, text=page))
    respx_mock.post("/cardlist/search", params={"page": "2"}).mock(return_value=httpx.Response(200, text=other))


@respx.mock(base_url=JP)
async def test_fetch_cards(respx_mock, pool, fast_pipeline, jp_results_page):
    _mock_two_releases(respx_mock, jp_results_page)
    cards = await fetch_cards(ScrapeConfig(), pool=pool, pipeline_config=fast_pipeline)
    assert sorted(c.card_number for c in cards) == ["BD/W63-001", "BD/W63-002", "BD/W73-003"]


@respx.mock(base_url=JP)
async def test_fetch_boosters(respx_mock, pool, fast_pipeline, jp_results_page):
    _mock_two_releases(respx_mock, jp_results_page)
    boosters = await fetch_boosters(ScrapeConfig(), pool=pool, pipeline_config=fast_pipeline)
    assert sorted(boosters) == ["W63", "W73"]
    assert len(boosters["W63"].cards) == 2
    assert len(boosters["W73"].cards) == 1


@respx.mock(base_url=JP)
async def test_aggregate_reports_failed_pages(respx_mock, pool, fast_pipeline, jp_results_page):
    respx_mock.post("/cardlist/search", params={"page": "1"}).mock(
        return_value=httpx.Response(200, text=jp_results_page([1], last_page=2))
    )
    respx_mock.post("/cardlist/search", params={"page": "2"}).mock(return_value=httpx.Response(500))
    fast_pipeline.max_retries = 1
    fast_pipeline.max_page_attempts = 1

    reducer = CardListReducer()
    pipeline = await aggregate(ScrapeConfig(), reducer, pool=pool, pipeline_config=fast_pipeline)
    assert len(reducer.cards) == 1
    assert [fp.url for fp in pipeline.failed_pages] == [f"{JP}/cardlist/search?page=2"]
