"""Shared fixtures: a zero-delay pipeline and fake result pages."""

import pytest

from ws_scraper.config import PipelineConfig
from ws_scraper.pool import DirectPool


@pytest.fixture
async def pool():
    p = DirectPool()
    yield p
    await p.close()


@pytest.fixture
def fast_pipeline():
    return PipelineConfig(
        max_scrape_workers=2,
        max_local_workers=3,
        min_request_interval_ms=0,
        max_retries=3,
        backoff_base_ms=0,
        max_page_attempts=3,
    )


def _jp_row(n: int, release: str = "W63") -> str:
    return (
        f'<tr><th><a href="#"><img src="/img/{release}_{n:03d}.png"></a></th><td>'
        f"<h4><a><span>Card {n}</span>(<span>BD/{release}-{n:03d}</span>)</a> -Set<br></h4>"
        '<span class="unit">種類：キャラ</span>'
        f'<span class="unit">パワー：{n}000</span>'
        f"<span>Text {n}</span>"
        "</td></tr>"
    )


@pytest.fixture
def jp_results_page():
    """Build a JP result page holding the given card numbers."""

    def build(numbers, last_page: int = 1, release: str = "W63") -> str:
        pager = ""
        if last_page > 1:
            links = "".join(f"<a>{i}</a>" for i in range(1, last_page + 1))
            pager = f'<div class="pager">{links}<span class="next"><a>次へ</a></span></div>'
        rows = "".join(_jp_row(n, release) for n in numbers)
        return f'<html><body>{pager}<table class="search-result-table">{rows}</table></body></html>'

    return build


@pytest.fixture
def en_detail_page():
    def build(number: str, name: str, card_type: str = "Character") -> str:
        return (
            '<html><body><div class="p-cards__detail-wrapper">'
            '<div class="image"><img src="/img/card.png"></div>'
            '<div class="p-cards__detail-textarea">'
            f'<p class="number">{number}</p><p class="ttl">{name}</p>'
            f"<dl><dt>Card Type</dt><dd>{card_type}</dd></dl>"
            "<dl><dt>Power</dt><dd>3000</dd></dl>"
            '<div class="p-cards__detail"><p>Ability</p></div>'
            "</div></div></body></html>"
        )

    return build
