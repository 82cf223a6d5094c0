"""Per-level page extractors.

Every level has a snapshot script evaluated in the page, returning raw strings
or nulls, and a pure `parse_*` function that turns that snapshot into records.
Markup selectors live only in the scripts below.
"""
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from rich.markup import escape

from normalize import (
    DISPLAY_SIZE_SUFFIX,
    dedup_ordered,
    normalize_image,
    render_spec_html,
    synthesize_spec_blocks,
    to_absolute,
)
from records import (
    CategoryRecord,
    ProductDetailRecord,
    ProductSummaryRecord,
    SubcategoryRecord,
)
from session import PageSession, console


MAX_SUBCATEGORIES_PER_CATEGORY = 2
READINESS_TIMEOUT_MS = 60000


CATEGORY_JS = """
() => Array.from(document.querySelectorAll('.industryCard')).map(card => ({
  name: card.querySelector('.card-title')?.innerText ?? null,
  image: card.querySelector('img')?.getAttribute('src') ?? null,
  description: card.querySelector('.card-body div')?.innerText ?? null,
  href: card.querySelector('a')?.getAttribute('href') ?? null,
}))
"""

SUBCATEGORY_JS = """
() => Array.from(document.querySelectorAll('.row .col-12.col-sm-6.col-lg-4')).map(sub => ({
  name: sub.querySelector('.panel-title')?.innerText ?? null,
  image: sub.querySelector('img')?.getAttribute('src') ?? null,
  href: sub.querySelector('a')?.getAttribute('href') ?? null,
}))
"""

PRODUCT_SUMMARY_JS = """
() => Array.from(document.querySelectorAll('.row.padding-top-20 .col-12.col-sm-6.col-lg-4')).map(product => ({
  name: product.querySelector('.productBoxName')?.innerText ?? null,
  image: product.querySelector('.product-box img')?.getAttribute('src') ?? null,
  short_description: product.querySelector('.productBoxTag')?.innerText ?? null,
  href: product.querySelector('a.product-link')?.getAttribute('href') ?? null,
}))
"""

AUTO_SCROLL_JS = """
async () => {
  await new Promise((resolve) => {
    let totalHeight = 0;
    const distance = 100;
    const timer = setInterval(() => {
      window.scrollBy(0, distance);
      totalHeight += distance;
      if (totalHeight >= document.body.scrollHeight) {
        clearInterval(timer);
        resolve();
      }
    }, 100);
  });
}
"""

IMAGES_READY_JS = """
() => {
  const mainImg = document.querySelector('#zoom .productImage');
  if (!mainImg) return false;
  const loaded = img => img.complete && img.naturalWidth > 0;
  const previews = Array.from(document.querySelectorAll('.product-image-preview img'));
  return loaded(mainImg) && previews.every(loaded);
}
"""

PRODUCT_DETAIL_JS = """
() => {
  const text = sel => document.querySelector(sel)?.innerText ?? null;
  const tables = Array.from(document.querySelectorAll('#specsList table.table')).map(table => ({
    title: table.querySelector('tr th')?.innerText ?? null,
    rows: Array.from(table.querySelectorAll('tr')).map(tr =>
      Array.from(tr.querySelectorAll('td')).map(td => td.innerText)),
  }));
  return {
    name: text('.productName'),
    subtitle: text('.productSubtitle'),
    description: text('.productDescription'),
    identifier: text('div[style*="color:rgba(0,0,0,0.4);font-size:12px;margin-top: 50px;"]'),
    main_image: document.querySelector('#zoom .productImage')?.getAttribute('src') ?? null,
    preview_images: Array.from(document.querySelectorAll('.product-image-preview img'))
      .map(img => img.getAttribute('src')),
    tables,
    href: window.location.href,
  };
}
"""


def _text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _cards(raw: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    return [c for c in raw if isinstance(c, dict)]


def _name_or_slug(name: Any, link: str) -> str:
    # Listing names feed parent-name propagation, so they must never be empty
    text = _text(name)
    if text:
        return text
    segments = [s for s in urlparse(link).path.split("/") if s]
    return segments[-1] if segments else link


def _resolve_link(card: Dict[str, Any], origin: str, level: str) -> Optional[str]:
    link = to_absolute(origin, card.get("href"))
    if link is None:
        console.log(f"Skipping {level} card without a link: {escape(str(_text(card.get('name'))))}")
        return None
    # javascript:, mailto: and tel: anchors survive urljoin but cannot be crawled
    if urlparse(link).scheme not in ("http", "https"):
        console.log(f"Skipping {level} card with non-web link: {escape(link)}")
        return None
    return link


def parse_categories(raw: Any, origin: str) -> List[CategoryRecord]:
    out: List[CategoryRecord] = []
    for card in _cards(raw):
        link = _resolve_link(card, origin, "category")
        if link is None:
            continue
        out.append(CategoryRecord(
            name=_name_or_slug(card.get("name"), link),
            image_url=to_absolute(origin, card.get("image")),
            description=_text(card.get("description")),
            link=link,
        ))
    return out


def parse_subcategories(
    raw: Any,
    category: CategoryRecord,
    origin: str,
    limit: int = MAX_SUBCATEGORIES_PER_CATEGORY,
) -> List[SubcategoryRecord]:
    """Build subcategory records for `category`, keeping only the first `limit` cards."""
    cards = _cards(raw)
    if limit > 0:
        cards = cards[:limit]
    out: List[SubcategoryRecord] = []
    for card in cards:
        link = _resolve_link(card, origin, "subcategory")
        if link is None:
            continue
        out.append(SubcategoryRecord(
            name=_name_or_slug(card.get("name"), link),
            image_url=to_absolute(origin, card.get("image")),
            link=link,
            parent_category_name=category.name,
        ))
    return out


def parse_product_summaries(raw: Any, subcategory: SubcategoryRecord, origin: str) -> List[ProductSummaryRecord]:
    out: List[ProductSummaryRecord] = []
    for card in _cards(raw):
        link = _resolve_link(card, origin, "product")
        if link is None:
            continue
        out.append(ProductSummaryRecord(
            name=_name_or_slug(card.get("name"), link),
            image_url=to_absolute(origin, card.get("image")),
            short_description=_text(card.get("short_description")),
            link=link,
            parent_category_name=subcategory.parent_category_name,
            parent_subcategory_name=subcategory.name,
        ))
    return out


def parse_product_detail(
    raw: Any,
    summary: ProductSummaryRecord,
    origin: str,
    display_suffix: str = DISPLAY_SIZE_SUFFIX,
) -> ProductDetailRecord:
    """Map a detail-page snapshot to a record, primary image first."""
    data = raw if isinstance(raw, dict) else {}
    previews = data.get("preview_images")
    if not isinstance(previews, list):
        previews = []
    images = dedup_ordered(
        normalize_image(origin, src, display_suffix)
        for src in [data.get("main_image"), *previews]
    )
    specifications = synthesize_spec_blocks(data.get("tables"))
    return ProductDetailRecord(
        name=_text(data.get("name")),
        identifier=_text(data.get("identifier")),
        images=images,
        subtitle=_text(data.get("subtitle")),
        description=_text(data.get("description")),
        canonical_link=to_absolute(origin, data.get("href")) or summary.link,
        specifications=specifications,
        technical_specifications=render_spec_html(specifications),
        parent_category_name=summary.parent_category_name,
        parent_subcategory_name=summary.parent_subcategory_name,
    )


async def extract_categories(session: PageSession, origin: str) -> List[CategoryRecord]:
    return parse_categories(await session.evaluate(CATEGORY_JS), origin)


async def extract_subcategories(
    session: PageSession,
    category: CategoryRecord,
    *,
    origin: str,
    limit: int = MAX_SUBCATEGORIES_PER_CATEGORY,
) -> List[SubcategoryRecord]:
    return parse_subcategories(await session.evaluate(SUBCATEGORY_JS), category, origin, limit)


async def extract_product_summaries(
    session: PageSession,
    subcategory: SubcategoryRecord,
    *,
    origin: str,
) -> List[ProductSummaryRecord]:
    products = parse_product_summaries(await session.evaluate(PRODUCT_SUMMARY_JS), subcategory, origin)
    for product in products:
        console.log(f"Found product: {escape(product.name)} - {product.link}")
    return products


async def extract_product_detail(
    session: PageSession,
    summary: ProductSummaryRecord,
    *,
    origin: str,
    readiness_timeout_ms: int = READINESS_TIMEOUT_MS,
    display_suffix: str = DISPLAY_SIZE_SUFFIX,
) -> List[ProductDetailRecord]:
    """Scroll, wait for product images, then snapshot the detail page.

    Returns a one-element list so it plugs into the stage runner like the
    listing extractors. Raises `ReadinessTimeoutError` if images never load.
    """
    await session.evaluate(AUTO_SCROLL_JS)
    console.log("Waiting for images to load...")
    await session.wait_for(IMAGES_READY_JS, readiness_timeout_ms)
    raw = await session.evaluate(PRODUCT_DETAIL_JS)
    return [parse_product_detail(raw, summary, origin, display_suffix)]
