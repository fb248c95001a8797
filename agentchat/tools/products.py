"""Best-effort extraction of product records from knowledge-base text.

Two inputs are supported:

* **Matched documents** (``extract_products_from_documents``): the rows
  returned by the similarity search.  Each document is tried against, in
  order: its metadata bag, ``Product ID: <digits>`` markers in the content,
  and finally a loose heading scan.
* **Assistant text** (``extract_products_from_text``): the model's final
  answer, usually a numbered markdown list such as::

      1. **Widget**
         - Product ID: 42
         - Description: A very useful widget.

Records for the same ``productId`` are merged field by field: a real value
always replaces a placeholder, a placeholder never replaces a real value.
None of the functions here raise; text without structure yields ``[]``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from agentchat.config import MAX_DESCRIPTION_LENGTH, MAX_NAME_LENGTH
from agentchat.services.vector_store import MatchedDocument

logger = logging.getLogger(__name__)

NO_DESCRIPTION = "No description available"

# Metadata keys tried in priority order; the first present, non-empty value wins.
ID_KEYS: tuple[str, ...] = ("productId", "product_id", "productID", "ProductId", "id", "sku")
NAME_KEYS: tuple[str, ...] = ("name", "productName", "product_name", "title")
DESCRIPTION_KEYS: tuple[str, ...] = (
    "description",
    "productDescription",
    "product_description",
    "summary",
    "details",
)

PRODUCT_ID_RE = re.compile(r"product\s*id\s*\**\s*[:#]\s*\**\s*(\d+)", re.IGNORECASE)
# Loose identifiers used only by the heading scan
LOOSE_ID_RE = re.compile(
    r"\b(?:product\s*id|sku|id|code|item\s*(?:no\.?|number))\s*\**\s*[:#]\s*\**\s*([A-Za-z0-9][\w-]*)",
    re.IGNORECASE,
)
HEADING_RE = re.compile(r"^[ \t]*(?:#{1,6}\s+|\d+[.)]\s+)(?P<title>\S.*)$", re.MULTILINE)
NUMBERED_BOLD_HEADER_RE = re.compile(r"^[ \t]*\d+[.)]\s+\*\*(?P<title>.+?)\*\*", re.MULTILINE)
BOLD_SPAN_RE = re.compile(r"\*\*(.+?)\*\*")
PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_DECORATION = " \t-*•·#>_`|"
_LEADING_LIST_RE = re.compile(r"^\s*(?:[-*•·>]+|\d+[.)]|#{1,6})\s*")
_OPENING_BRACKETS = "([{"
_CLOSING_BRACKETS = ")]}"


class Product(BaseModel):
    """A product mentioned by the knowledge base or by the assistant."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    product_id: str
    name: str = ""
    description: str = NO_DESCRIPTION

    def model_post_init(self, context: Any, /) -> None:
        if not self.name:
            self.name = placeholder_name(self.product_id)
        if not self.description:
            self.description = NO_DESCRIPTION

    @property
    def has_placeholder_name(self) -> bool:
        return self.name == placeholder_name(self.product_id)

    @property
    def has_placeholder_description(self) -> bool:
        return self.description == NO_DESCRIPTION


def placeholder_name(product_id: str) -> str:
    return f"Product {product_id}"


# ── Merging ──────────────────────────────────────────────────────────


def merge_product(base: Product, incoming: Product) -> Product:
    """Return *base* with its placeholder fields filled from *incoming*."""
    updates: dict[str, str] = {}
    if base.has_placeholder_name and not incoming.has_placeholder_name:
        updates["name"] = incoming.name
    if base.has_placeholder_description and not incoming.has_placeholder_description:
        updates["description"] = incoming.description
    return base.model_copy(update=updates) if updates else base


def dedupe_products(products: Iterable[Product]) -> list[Product]:
    """Collapse records sharing a ``product_id``, keeping first-seen order."""
    merged: dict[str, Product] = {}
    for product in products:
        existing = merged.get(product.product_id)
        merged[product.product_id] = merge_product(existing, product) if existing else product
    return list(merged.values())


def reconcile_products(primary: Iterable[Product], secondary: Iterable[Product]) -> list[Product]:
    """Upgrade placeholder fields in *primary* from *secondary*.

    Only identifiers present in *primary* survive; *secondary* is an
    enrichment source, not a source of new products.
    """
    by_id = {product.product_id: product for product in dedupe_products(secondary)}
    return [
        merge_product(product, by_id[product.product_id]) if product.product_id in by_id else product
        for product in dedupe_products(primary)
    ]


# ── Text helpers ─────────────────────────────────────────────────────


def _strip_edges(text: str, extra: str = "") -> str:
    """Strip decoration plus brackets left open by a split at an inline marker.

    Only a closing bracket at the start or an opening bracket at the end is
    removed, so ``Widget (Large)`` keeps its parentheses.
    """
    while True:
        trimmed = (
            text.lstrip(_DECORATION + extra + _CLOSING_BRACKETS)
            .rstrip(_DECORATION + extra + _OPENING_BRACKETS)
        )
        if trimmed == text:
            return text
        text = trimmed


def normalize_description(text: str, max_length: int = MAX_DESCRIPTION_LENGTH) -> str:
    """Collapse whitespace, drop bold markers and truncate."""
    text = text.replace("**", "")
    text = _strip_edges(re.sub(r"\s+", " ", text))
    return text[:max_length].rstrip()


def _clean_name(line: str) -> str | None:
    """Strip list/markup decoration from a candidate name line.

    Returns ``None`` for lines that cannot be a product name: empty,
    implausibly long, or label-like (``Price: 10``).
    """
    name = _LEADING_LIST_RE.sub("", line)
    name = name.replace("**", "").replace("__", "")
    name = _strip_edges(name, ":–—,")
    if not name or len(name) > MAX_NAME_LENGTH or ":" in name:
        return None
    return name


def _has_words(line: str) -> bool:
    return bool(_strip_edges(_LEADING_LIST_RE.sub("", line).replace("**", "")))


def _split_trailing_line(text: str) -> tuple[str, str | None]:
    """Split off the last line of *text* that carries more than decoration.

    Returns the text before that line and the line's cleaned name (``None``
    when the line is not a plausible name).
    """
    lines = text.splitlines()
    for index in range(len(lines) - 1, -1, -1):
        if _has_words(lines[index]):
            return "\n".join(lines[:index]), _clean_name(lines[index])
    return "", None


def _labelled_value(label: str, text: str) -> str | None:
    """Return the value following ``<label>:`` up to a blank line or the next label."""
    pattern = re.compile(
        rf"\**\s*{label}\s*\**\s*:\s*\**\s*(.+?)"
        r"(?=\n\s*\n|\n\s*[-*•]?\s*\**[A-Za-z][\w ]{0,30}\**\s*:|\Z)",
        re.IGNORECASE | re.DOTALL,
    )
    match = pattern.search(text)
    if not match:
        return None
    value = normalize_description(match.group(1))
    return value or None


def _first_paragraph(text: str) -> str | None:
    """Return the first non-empty paragraph that is not another product's marker."""
    for paragraph in PARAGRAPH_SPLIT_RE.split(text):
        value = normalize_description(paragraph)
        if value and not PRODUCT_ID_RE.search(value):
            return value
    return None


def _metadata_value(metadata: Mapping[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = metadata.get(key)
        if value is None or isinstance(value, (dict, list)):
            continue
        value = str(value).strip()
        if value:
            return value
    return None


# ── Strategies ───────────────────────────────────────────────────────


def _from_metadata(metadata: Mapping[str, Any]) -> Product | None:
    product_id = _metadata_value(metadata, ID_KEYS)
    if not product_id:
        return None
    name = _metadata_value(metadata, NAME_KEYS)
    description = _metadata_value(metadata, DESCRIPTION_KEYS)
    return Product(
        product_id=product_id,
        name=name or "",
        description=normalize_description(description) if description else NO_DESCRIPTION,
    )


def _from_markers(text: str) -> list[Product]:
    """Scan for ``Product ID: <digits>`` markers.

    The name is the last non-empty line before a marker; the description is
    an explicit ``Description:`` label after it, else the next paragraph.
    The line carrying the next product's name is excluded from the
    description window.
    """
    matches = list(PRODUCT_ID_RE.finditer(text))
    products: list[Product] = []
    for index, match in enumerate(matches):
        head_start = matches[index - 1].end() if index else 0
        _, name = _split_trailing_line(text[head_start : match.start()])

        if index + 1 < len(matches):
            tail, _ = _split_trailing_line(text[match.end() : matches[index + 1].start()])
        else:
            tail = text[match.end() :]
        description = _labelled_value("description", tail) or _first_paragraph(tail)

        products.append(
            Product(
                product_id=match.group(1),
                name=name or "",
                description=description or NO_DESCRIPTION,
            )
        )
    return products


def _from_headings(text: str) -> list[Product]:
    """Last resort: a heading line followed in its block by a loose id marker."""
    headings = list(HEADING_RE.finditer(text))
    products: list[Product] = []
    for index, heading in enumerate(headings):
        end = headings[index + 1].start() if index + 1 < len(headings) else len(text)
        block = text[heading.end() : end]
        id_match = LOOSE_ID_RE.search(block)
        if not id_match:
            continue
        name = _clean_name(heading.group("title"))
        remainder = block[: id_match.start()] + block[id_match.end() :]
        description = _labelled_value("description", remainder) or _first_paragraph(
            _drop_label_lines(remainder)
        )
        products.append(
            Product(
                product_id=id_match.group(1),
                name=name or "",
                description=description or NO_DESCRIPTION,
            )
        )
    return products


def _drop_label_lines(text: str) -> str:
    return "\n".join(
        line for line in text.splitlines() if not re.match(r"^\s*[-*•]?\s*\**\s*[A-Za-z][\w ]{0,30}\**\s*:\s*\S*$", line)
    )


# ── Public API ───────────────────────────────────────────────────────


def extract_products_from_document(document: MatchedDocument) -> list[Product]:
    """Extract every product described by one matched document."""
    found: dict[str, Product] = {}

    metadata_product = _from_metadata(document.metadata or {})
    if metadata_product:
        found[metadata_product.product_id] = metadata_product

    for product in _from_markers(document.content or ""):
        existing = found.get(product.product_id)
        found[product.product_id] = merge_product(existing, product) if existing else product

    if not found:
        for product in _from_headings(document.content or ""):
            existing = found.get(product.product_id)
            found[product.product_id] = merge_product(existing, product) if existing else product

    return list(found.values())


def extract_products_from_documents(documents: Iterable[MatchedDocument]) -> list[Product]:
    """Extract and dedupe products across all *documents*."""
    products: list[Product] = []
    for document in documents:
        try:
            products.extend(extract_products_from_document(document))
        except Exception:
            logger.warning("Product extraction failed for document %s", document.id, exc_info=True)
    result = dedupe_products(products)
    logger.debug("Extracted %d products from documents", len(result))
    return result


def extract_products_from_text(text: str | None) -> list[Product]:
    """Extract products from the assistant's final answer.

    Segments start at numbered bold headers (``1. **Widget**``).  A segment
    without a ``Product ID`` is skipped.  Text with no such headers falls
    back to the plain marker scan.
    """
    if not text:
        return []
    try:
        headers = list(NUMBERED_BOLD_HEADER_RE.finditer(text))
        if not headers:
            return dedupe_products(_from_markers(text))

        products: list[Product] = []
        for index, header in enumerate(headers):
            end = headers[index + 1].start() if index + 1 < len(headers) else len(text)
            segment = text[header.start() : end]
            id_match = PRODUCT_ID_RE.search(segment)
            if not id_match:
                continue
            bold = BOLD_SPAN_RE.search(segment)
            name = _clean_name(bold.group(1)) if bold else None
            description = _labelled_value("description", segment) or _labelled_value(
                "details", segment
            )
            products.append(
                Product(
                    product_id=id_match.group(1),
                    name=name or "",
                    description=description or NO_DESCRIPTION,
                )
            )
        return dedupe_products(products)
    except Exception:
        logger.warning("Product extraction from assistant text failed", exc_info=True)
        return []
