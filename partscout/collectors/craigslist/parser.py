"""
Craigslist search page parsing.

Pure HTML/JSON extraction: no HTTP and no canonical-listing mapping here.
"""
import html as html_lib
import json
import re
from dataclasses import dataclass, replace
from typing import Any, Optional
from urllib.parse import urljoin

import structlog
from bs4 import BeautifulSoup, Tag

logger = structlog.get_logger()

# Result rows on the static (no-JS) search page, then the JS-rendered layout
ROW_SELECTORS = [
    "li.cl-static-search-result",
    "li.cl-search-result",
]

PRICE_PATTERN = re.compile(r"\$\s*(\d[\d,]*(?:\.\d{1,2})?)")
POSTING_ID_PATTERN = re.compile(r"/(\d+)\.html(?:$|[?#])")
WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass(frozen=True)
class SearchRow:
    """One result row as it appears on the search page."""
    title: str
    link: str
    price_text: Optional[str] = None
    location_text: Optional[str] = None
    image: Optional[str] = None


@dataclass(frozen=True)
class StructuredEntry:
    """An item from the page's embedded JSON-LD ItemList."""
    name: str
    image: Optional[str] = None
    price: Optional[str] = None
    locality: Optional[str] = None
    region: Optional[str] = None

    @property
    def location(self) -> Optional[str]:
        joined = ", ".join(p for p in (self.locality, self.region) if p)
        return joined or None


def normalize_name(value: str) -> str:
    """Collapse whitespace and decode HTML entities for title matching."""
    return WHITESPACE_PATTERN.sub(" ", html_lib.unescape(value)).strip().casefold()


def parse_price_cents(price_text: Optional[str]) -> Optional[int]:
    """
    Parse the first ``$``-prefixed amount into integer cents.

    ``"$1,250"`` -> 125000; ``"Free"`` or no dollar amount -> None.
    """
    if not price_text:
        return None
    match = PRICE_PATTERN.search(price_text)
    if not match:
        return None
    amount = match.group(1).replace(",", "")
    if "." in amount:
        dollars, cents = amount.split(".")
        return int(dollars or "0") * 100 + int(cents.ljust(2, "0"))
    return int(amount) * 100


def extract_posting_id(url: str) -> Optional[str]:
    """Return the numeric posting id from ``.../<digits>.html``, else None."""
    match = POSTING_ID_PATTERN.search(url)
    return match.group(1) if match else None


def _text(element: Optional[Tag]) -> Optional[str]:
    if element is None:
        return None
    text = element.get_text(" ", strip=True)
    return text or None


def _parse_row(item: Tag, origin: str) -> Optional[SearchRow]:
    anchor = item.find("a", href=True)
    title = _text(item.select_one(".title, .label")) or _text(anchor)
    href = anchor.get("href") if anchor else None

    if not title or not href:
        return None

    image_el = item.find("img")
    image = None
    if image_el is not None:
        image = image_el.get("src") or image_el.get("data-src")

    return SearchRow(
        title=title,
        link=urljoin(origin + "/", href),
        price_text=_text(item.select_one(".price, .priceinfo")),
        location_text=_text(item.select_one(".location, .meta .location")),
        image=image or None,
    )


def parse_search_rows(html: str, origin: str) -> list[SearchRow]:
    """
    Extract result rows from a search results page.

    Args:
        html: Page HTML
        origin: Region origin (``https://sfbay.craigslist.org``) used to
            resolve relative links

    Returns:
        Rows in page order; rows lacking a title or link are skipped
    """
    soup = BeautifulSoup(html, "lxml")

    elements: list[Tag] = []
    for selector in ROW_SELECTORS:
        elements = soup.select(selector)
        if elements:
            break

    rows = []
    for element in elements:
        row = _parse_row(element, origin)
        if row is not None:
            rows.append(row)
    return rows


def _entry_from_item(item: Any) -> Optional[StructuredEntry]:
    if not isinstance(item, dict):
        return None
    # ListItem wrappers carry the product under "item"
    product = item.get("item") if isinstance(item.get("item"), dict) else item
    name = product.get("name")
    if not name:
        return None

    image = product.get("image")
    if isinstance(image, list):
        image = image[0] if image else None

    offers = product.get("offers") or {}
    if isinstance(offers, list):
        offers = offers[0] if offers else {}
    price = offers.get("price") if isinstance(offers, dict) else None

    address = {}
    if isinstance(offers, dict):
        place = offers.get("availableAtOrFrom") or {}
        if isinstance(place, dict):
            address = place.get("address") or {}

    return StructuredEntry(
        name=str(name),
        image=image if isinstance(image, str) else None,
        price=str(price) if price not in (None, "") else None,
        locality=address.get("addressLocality") if isinstance(address, dict) else None,
        region=address.get("addressRegion") if isinstance(address, dict) else None,
    )


def parse_structured_data(html: str) -> dict[str, StructuredEntry]:
    """
    Read the embedded JSON-LD search results into ``{normalized name: entry}``.

    Malformed blocks are ignored; the map is empty when none are present.
    """
    soup = BeautifulSoup(html, "lxml")
    entries: dict[str, StructuredEntry] = {}

    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON-LD block", script_id=script.get("id"))
            continue

        if not isinstance(data, dict):
            continue
        for item in data.get("itemListElement") or []:
            entry = _entry_from_item(item)
            if entry is not None:
                entries.setdefault(normalize_name(entry.name), entry)

    return entries


def enrich_rows(rows: list[SearchRow], entries: dict[str, StructuredEntry]) -> list[SearchRow]:
    """
    Fill image, price and location from matching structured-data entries.

    Row values already present on the page take precedence.
    """
    if not entries:
        return rows

    enriched = []
    for row in rows:
        entry = entries.get(normalize_name(row.title))
        if entry is None:
            enriched.append(row)
            continue
        enriched.append(replace(
            row,
            image=row.image or entry.image,
            price_text=row.price_text or (f"${entry.price}" if entry.price else None),
            location_text=entry.location or row.location_text,
        ))
    return enriched
