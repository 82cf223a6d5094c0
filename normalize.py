import html
from typing import Any, Iterable, List, Optional
from urllib.parse import urljoin, urlparse

from records import SpecBlock, SpecRow


DISPLAY_SIZE_SUFFIX = "&height=500"


def to_absolute(base_origin: str, maybe_relative: Optional[str]) -> Optional[str]:
    """Resolve an href/src against the site origin. Absolute URLs pass through."""
    if maybe_relative is None:
        return None
    u = str(maybe_relative).strip()
    if not u:
        return None
    if u.startswith("http://") or u.startswith("https://"):
        return u
    if u.startswith("//"):
        scheme = urlparse(base_origin).scheme or "https"
        return f"{scheme}:{u}"
    return urljoin(base_origin, u)


def strip_display_suffix(url: str, suffix: str = DISPLAY_SIZE_SUFFIX) -> str:
    """Drop the thumbnail sizing marker the site appends to image URLs."""
    if not suffix:
        return url
    return url.replace(suffix, "")


def dedup_ordered(urls: Iterable[Optional[str]]) -> List[str]:
    return list(dict.fromkeys(u for u in urls if u))


def normalize_image(base_origin: str, src: Optional[str], suffix: str = DISPLAY_SIZE_SUFFIX) -> Optional[str]:
    absolute = to_absolute(base_origin, src)
    if absolute is None:
        return None
    return strip_display_suffix(absolute, suffix)


def _cell_text(cell: Any) -> str:
    return cell.strip() if isinstance(cell, str) else ""


def synthesize_spec_blocks(raw_tables: Any) -> List[SpecBlock]:
    """Turn raw spec tables into (name, value) blocks grouped by table title.

    Each raw table is ``{"title": str | None, "rows": [[cell, ...], ...]}`` with
    row 0 being the header row. Untitled tables are ignored, and so are rows
    whose first two cells are not both populated.
    """
    blocks: List[SpecBlock] = []
    if not isinstance(raw_tables, list):
        return blocks
    for table in raw_tables:
        if not isinstance(table, dict):
            continue
        title = table.get("title")
        if not isinstance(title, str):
            continue
        rows: List[SpecRow] = []
        raw_rows = table.get("rows") or []
        for cells in raw_rows[1:]:
            if not isinstance(cells, list) or len(cells) < 2:
                continue
            name, value = _cell_text(cells[0]), _cell_text(cells[1])
            if not name or not value:
                continue
            rows.append(SpecRow(spec_name=name, spec_value=value))
        blocks.append(SpecBlock(table_title=title.strip(), rows=rows))
    return blocks


def render_spec_html(blocks: Iterable[SpecBlock]) -> str:
    """Render spec blocks as the HTML fragment used by the catalog import."""
    out: List[str] = []
    for block in blocks:
        out.append(f"<h3>{html.escape(block.table_title)}</h3>")
        out.append('<table border="1" style="border-collapse: collapse; width: 100%;">')
        out.append("<thead><tr><th>Spec Name</th><th>Spec Value</th></tr></thead><tbody>")
        for row in block.rows:
            out.append(f"<tr><td>{html.escape(row.spec_name)}</td><td>{html.escape(row.spec_value)}</td></tr>")
        out.append("</tbody></table><br><br>")
    return "".join(out)
