"""Tests for the scrape pipeline."""

import io
from urllib.parse import parse_qs

import httpx
import pytest
import respx
from PIL import Image

from ws_scraper.config import ScrapeConfig
from ws_scraper.errors import ConfigError, ScrapeError
from ws_scraper.pipeline import CardPipeline, CompletionTracker

JP = "https://ws-tcg.com"
EN = "https://en.ws-tcg.com"


async def _collect(pipeline):
    return [card async for card in pipeline.stream()]


def _numbers(cards):
    return sorted(card.card_number for card in cards)


async def test_completion_tracker():
    tracker = CompletionTracker(2)
    tracker.done()
    assert tracker.pending == 1
    tracker.done()
    await tracker.wait()
    with pytest.raises(RuntimeError):
        tracker.done()


async def test_completion_tracker_empty():
    await CompletionTracker(0).wait()


@respx.mock(base_url=JP)
async def test_jp_single_task(respx_mock, pool, fast_pipeline, jp_results_page):
    respx_mock.post("/cardlist/search", params={"page": "1"}).mock(
        return_value=httpx.Response(200, text=jp_results_page([1, 2, 3], last_page=2))
    )
    respx_mock.post("/cardlist/search", params={"page": "2"}).mock(
        return_value=httpx.Response(200, text=jp_results_page([4, 5], last_page=2))
    )
    pipeline = CardPipeline(ScrapeConfig(language="JP", expansion=159), pool=pool, pipeline_config=fast_pipeline)
    cards = await _collect(pipeline)

    assert _numbers(cards) == [f"BD/W63-00{n}" for n in range(1, 6)]
    assert all(card.language == "JP" for card in cards)
    assert pipeline.failed_pages == []


@respx.mock(base_url=JP)
async def test_search_form_is_posted(respx_mock, pool, fast_pipeline, jp_results_page):
    route = respx_mock.post("/cardlist/search", params={"page": "1"}).mock(
        return_value=httpx.Response(200, text=jp_results_page([1]))
    )
    config = ScrapeConfig(language="ja", expansion=159, set_codes=["BD"], all_rarities=False)
    await _collect(CardPipeline(config, pool=pool, pipeline_config=fast_pipeline))

    form = parse_qs(route.calls.last.request.content.decode())
    assert form["expansion"] == ["159"]
    assert form["title_number"] == ["##BD##"]
    assert form["parallel"] == ["1"]


@respx.mock(base_url=JP)
async def test_page_retried_then_scanned_once(respx_mock, pool, fast_pipeline, jp_results_page):
    respx_mock.post("/cardlist/search", params={"page": "1"}).mock(
        return_value=httpx.Response(200, text=jp_results_page([1, 2], last_page=2))
    )
    page2 = respx_mock.post("/cardlist/search", params={"page": "2"}).mock(side_effect=[
        httpx.Response(500),
        httpx.Response(500),
        httpx.Response(200, text=jp_results_page([3], last_page=2)),
    ])
    pipeline = CardPipeline(ScrapeConfig(), pool=pool, pipeline_config=fast_pipeline)
    cards = await _collect(pipeline)

    assert _numbers(cards) == ["BD/W63-001", "BD/W63-002", "BD/W63-003"]
    assert page2.call_count == 3
    assert pipeline.failed_pages == []


@respx.mock(base_url=JP)
async def test_page_start_skips_pages(respx_mock, pool, fast_pipeline, jp_results_page):
    respx_mock.post("/cardlist/search", params={"page": "1"}).mock(
        return_value=httpx.Response(200, text=jp_results_page([1], last_page=3))
    )
    respx_mock.post("/cardlist/search", params={"page": "2"}).mock(
        return_value=httpx.Response(200, text=jp_results_page([2], last_page=3))
    )
    respx_mock.post("/cardlist/search", params={"page": "3"}).mock(
        return_value=httpx.Response(200, text=jp_results_page([3], last_page=3))
    )
    config = ScrapeConfig(page_start=2)
    cards = await _collect(CardPipeline(config, pool=pool, pipeline_config=fast_pipeline))
    assert _numbers(cards) == ["BD/W63-002", "BD/W63-003"]


@respx.mock(base_url=JP)
async def test_reverse_order(respx_mock, pool, fast_pipeline, jp_results_page):
    respx_mock.post("/cardlist/search", params={"page": "1"}).mock(
        return_value=httpx.Response(200, text=jp_results_page([1], last_page=2))
    )
    respx_mock.post("/cardlist/search", params={"page": "2"}).mock(
        return_value=httpx.Response(200, text=jp_results_page([2], last_page=2))
    )
    fast_pipeline.max_scrape_workers = 1
    config = ScrapeConfig(reverse=True)
    cards = await _collect(CardPipeline(config, pool=pool, pipeline_config=fast_pipeline))
    assert _numbers(cards) == ["BD/W63-001", "BD/W63-002"]

    # Page 1 is always read first for the page count; the crawl then starts from the last page
    fetched = [str(call.request.url) for call in respx_mock.calls]
    assert fetched == [
        f"{JP}/cardlist/search?page=1",
        f"{JP}/cardlist/search?page=2",
        f"{JP}/cardlist/search?page=1",
    ]


@respx.mock(base_url=JP)
async def test_failing_page_is_given_up(respx_mock, pool, fast_pipeline, jp_results_page):
    respx_mock.post("/cardlist/search", params={"page": "1"}).mock(
        return_value=httpx.Response(200, text=jp_results_page([1, 2], last_page=2))
    )
    page2 = respx_mock.post("/cardlist/search", params={"page": "2"}).mock(
        return_value=httpx.Response(503)
    )
    fast_pipeline.max_retries = 1
    fast_pipeline.max_page_attempts = 2
    pipeline = CardPipeline(ScrapeConfig(), pool=pool, pipeline_config=fast_pipeline)
    cards = await _collect(pipeline)

    assert _numbers(cards) == ["BD/W63-001", "BD/W63-002"]
    assert page2.call_count == 2
    [failed] = pipeline.failed_pages
    assert failed.url == f"{JP}/cardlist/search?page=2"
    assert failed.attempts == 2


@respx.mock(base_url=JP)
async def test_empty_page_body_is_requeued(respx_mock, pool, fast_pipeline, jp_results_page):
    respx_mock.post("/cardlist/search", params={"page": "1"}).mock(
        return_value=httpx.Response(200, text=jp_results_page([1], last_page=2))
    )
    respx_mock.post("/cardlist/search", params={"page": "2"}).mock(side_effect=[
        httpx.Response(200, text=""),
        httpx.Response(200, text=jp_results_page([2], last_page=2)),
    ])
    pipeline = CardPipeline(ScrapeConfig(), pool=pool, pipeline_config=fast_pipeline)
    cards = await _collect(pipeline)
    assert _numbers(cards) == ["BD/W63-001", "BD/W63-002"]
    assert pipeline.failed_pages == []


@respx.mock(base_url=JP)
async def test_page_count_failure_raises(respx_mock, pool, fast_pipeline):
    respx_mock.post("/cardlist/search", params={"page": "1"}).mock(return_value=httpx.Response(500))
    with pytest.raises(ScrapeError):
        await _collect(CardPipeline(ScrapeConfig(), pool=pool, pipeline_config=fast_pipeline))


async def test_config_error_before_any_request(pool, fast_pipeline):
    with respx.mock(assert_all_called=False) as mock:
        route = mock.route().mock(return_value=httpx.Response(200))
        with pytest.raises(ConfigError):
            await _collect(CardPipeline(ScrapeConfig(language="JP", title=3), pool=pool, pipeline_config=fast_pipeline))
        with pytest.raises(ConfigError):
            await _collect(CardPipeline(ScrapeConfig(language="FR"), pool=pool, pipeline_config=fast_pipeline))
        assert route.call_count == 0


@respx.mock(base_url=JP)
async def test_recent_releases(respx_mock, pool, fast_pipeline, jp_results_page):
    respx_mock.get("/cardlist/").mock(return_value=httpx.Response(200, text=(
        '<div class="system"><ul class="expansion-list">'
        "<li><a onclick=\"doSearch('444')\">A</a></li>"
        "<li><a onclick=\"doSearch('439')\">B</a></li>"
        "</ul></div>"
    )))

    def search(request):
        form = parse_qs(request.content.decode())
        if form["expansion"] == ["444"]:
            return httpx.Response(200, text=jp_results_page([1, 2], release="W444"))
        return httpx.Response(200, text=jp_results_page([3], release="W439"))

    respx_mock.post("/cardlist/search", params={"page": "1"}).mock(side_effect=search)
    cards = await _collect(CardPipeline(ScrapeConfig(recent=True), pool=pool, pipeline_config=fast_pipeline))
    assert _numbers(cards) == ["BD/W439-003", "BD/W444-001", "BD/W444-002"]


@respx.mock(base_url=JP)
async def test_images_attached(respx_mock, pool, fast_pipeline, jp_results_page):
    buf = io.BytesIO()
    Image.new("RGB", (2, 3)).save(buf, format="PNG")
    respx_mock.post("/cardlist/search", params={"page": "1"}).mock(
        return_value=httpx.Response(200, text=jp_results_page([1]))
    )
    respx_mock.get("/img/W63_001.png").mock(return_value=httpx.Response(200, content=buf.getvalue()))

    [card] = await _collect(CardPipeline(ScrapeConfig(images=True), pool=pool, pipeline_config=fast_pipeline))
    assert card.image_url == f"{JP}/img/W63_001.png"
    assert card.image.size == (2, 3)


@respx.mock(base_url=EN)
async def test_en_detail_pages(respx_mock, pool, fast_pipeline, en_detail_page):
    listing = (
        '<div class="c-search__results-item"><span>3</span> results</div>'
        '<div class="p_cards__results-box"><ul>'
        '<li><a href="/cardlist/detail/1">1</a></li>'
        '<li><a href="/cardlist/detail/2">2</a></li>'
        '<li><a href="/cardlist/detail/3">3</a></li>'
        "</ul></div>"
    )
    respx_mock.post("/cardlist/searchresults/", params={"page": "1"}).mock(
        return_value=httpx.Response(200, text=listing)
    )
    respx_mock.get("/cardlist/detail/1").mock(
        return_value=httpx.Response(200, text=en_detail_page("FS/S64-001", "Saber"))
    )
    respx_mock.get("/cardlist/detail/2").mock(
        return_value=httpx.Response(200, text=en_detail_page("FS/S64-002", "Rin", card_type="Event"))
    )
    respx_mock.get("/cardlist/detail/3").mock(return_value=httpx.Response(404))

    pipeline = CardPipeline(ScrapeConfig(language="EN"), pool=pool, pipeline_config=fast_pipeline)
    cards = await _collect(pipeline)

    by_number = {card.card_number: card for card in cards}
    assert sorted(by_number) == ["FS/S64-001", "FS/S64-002"]
    assert by_number["FS/S64-001"].power == "3000"
    assert by_number["FS/S64-002"].power == ""
    assert by_number["FS/S64-001"].image_url == f"{EN}/img/card.png"
    [failed] = pipeline.failed_pages
    assert failed.url == f"{EN}/cardlist/detail/3"
