"""
Header classification for OCR tables.

OCR tables arrive in every state: proper header rows, header rows with odd
wording, or no header row at all (the first row is already a line item).
This module decides which case applies and maps every column onto the
canonical line-item vocabulary. It never raises on odd input; a column it
cannot explain simply becomes `column_N`.
"""
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set

from ..core.pattern_loader import pattern_config
from .models import Grid

logger = logging.getLogger(__name__)

# --- CONSTANTS ---
CANONICAL_HEADERS = (
    "pr_codenum", "description", "pu_quant", "pu_price",
    "total", "unit", "vendor_sku", "notes",
)

PART_NUMBER_PATTERN = re.compile(r'P\d{2}-\d{3}-\d{3}')
INTEGER_PATTERN = re.compile(r'^\d+$')
DOLLAR_PATTERN = re.compile(r'^\(?-?\$\s?-?\d{1,3}(?:,?\d{3})*(?:\.\d+)?\)?$')
DECIMAL_PATTERN = re.compile(r'^\(?-?\d{1,3}(?:,?\d{3})*\.\d+\)?$')
QTY_PART_PATTERN = re.compile(r'^\d+\s+P\d{2}-\d{3}-\d{3}')
DIMENSION_PATTERN = re.compile(
    r'\d+(?:\.\d+)?\s*(?:x|×|by)\s*\d+'
    r'|\d+(?:[./]\d+)?\s*(?:"|\'|in\b|mm\b|cm\b|ft\b|ga\b|ga\.)',
    re.IGNORECASE,
)
WORD_PATTERN = re.compile(r'[A-Za-z]{3,}')

DEFAULT_HEADER_KEYWORDS = (
    "order", "items", "quantity", "qty", "cost", "unit price", "price",
    "#", "amount", "total", "unit", "each", "ea",
)

DEFAULT_UNIT_TOKENS = (
    "ea", "each", "pc", "pcs", "box", "bx", "case", "cs", "ft", "lb",
    "kg", "roll", "pk", "pack", "set", "pr", "dz", "gal", "hr",
)


@dataclass(frozen=True)
class HeaderRule:
    """
    One entry of the synonym table.

    `equals` candidates must match the whole header text and are tried
    before the `contains` candidates, which match as substrings.
    """
    canonical: str
    equals: tuple = ()
    contains: tuple = ()

    def candidates(self):
        for text in self.equals:
            yield text, True
        for text in self.contains:
            yield text, False

    def find_column(self, headers: Sequence[str], claimed: Set[int]) -> Optional[int]:
        for candidate, exact in self.candidates():
            for idx, header in enumerate(headers):
                if idx in claimed:
                    continue
                if (exact and header == candidate) or (not exact and candidate in header):
                    return idx
        return None


DEFAULT_HEADER_RULES = (
    HeaderRule("vendor_sku", ("sku",), ("vendor sku", "vendor part", "mfr part", "manufacturer part")),
    HeaderRule("description", ("item",), ("description", "desc", "details")),
    HeaderRule("total", (), ("total", "amount", "extended", "ext price")),
    HeaderRule("pu_price", ("#",), ("unit price", "unit cost", "price", "cost", "rate")),
    HeaderRule("pu_quant", (), ("quantity", "qty", "order", "items")),
    HeaderRule("unit", ("ea", "each"), ("unit", "uom")),
    HeaderRule("notes", (), ("notes", "note", "remarks")),
)


@dataclass
class ClassifiedTable:
    headers: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)
    headerless: bool = False


def _lowered(values: Iterable) -> tuple:
    return tuple(str(v).strip().lower() for v in values if v is not None and str(v).strip())


def load_header_rules(raw_rules=None) -> List[HeaderRule]:
    """Builds HeaderRule records from patterns.yaml entries (or the built-in table)."""
    if raw_rules is None:
        raw_rules = pattern_config.get_header_rules()

    rules = []
    for entry in raw_rules or []:
        if not isinstance(entry, dict) or not entry.get("canonical"):
            logger.warning(f"Ignoring malformed header rule: {entry!r}")
            continue
        rules.append(HeaderRule(
            canonical=str(entry["canonical"]),
            equals=_lowered(entry.get("equals") or ()),
            contains=_lowered(entry.get("contains") or ()),
        ))
    return rules or list(DEFAULT_HEADER_RULES)


def header_keywords() -> tuple:
    return _lowered(pattern_config.get_header_keywords()) or DEFAULT_HEADER_KEYWORDS


def unit_tokens() -> Set[str]:
    return set(_lowered(pattern_config.get_unit_tokens()) or DEFAULT_UNIT_TOKENS)


def majority(count: int) -> int:
    return max(1, math.ceil(count / 2))


def is_data_shaped(cell: str) -> bool:
    text = str(cell or "").strip()
    if not text:
        return False
    return bool(
        PART_NUMBER_PATTERN.search(text)
        or INTEGER_PATTERN.match(text)
        or DOLLAR_PATTERN.match(text)
        or DECIMAL_PATTERN.match(text)
        or QTY_PART_PATTERN.match(text)
    )


def is_monetary(cell: str) -> bool:
    text = str(cell or "").strip()
    return bool(DOLLAR_PATTERN.match(text) or DECIMAL_PATTERN.match(text))


def is_headerless(first_row: Sequence[str], keywords: Optional[Sequence[str]] = None) -> bool:
    """True when the first row reads as data rather than column labels."""
    keywords = keywords or header_keywords()
    lowered = [str(c or "").strip().lower() for c in first_row]

    has_keyword = any(kw in cell for cell in lowered for kw in keywords)
    if not has_keyword:
        return True

    data_cells = sum(1 for cell in first_row if is_data_shaped(cell))
    return data_cells >= majority(len(first_row))


def _dedupe(headers: List[str]) -> List[str]:
    """Later duplicates get their 0-based column index appended."""
    seen = set()
    result = []
    for idx, name in enumerate(headers):
        if name in seen:
            name = f"{name}_{idx}"
        seen.add(name)
        result.append(name)
    return result


# =========================================================
#                   HEADERLESS TABLES
# =========================================================

def _infer_column(values: List[str], idx: int, col_count: int, assigned: List[str], units: Set[str]) -> str:
    fallback = f"column_{idx + 1}"
    if not values:
        return fallback

    if "pr_codenum" not in assigned and any(PART_NUMBER_PATTERN.search(v) for v in values):
        return "pr_codenum"

    if "pu_quant" not in assigned and all(INTEGER_PATTERN.match(v) for v in values):
        return "pu_quant"

    needed = majority(len(values))

    if sum(1 for v in values if is_monetary(v)) >= needed:
        return "total" if idx == col_count - 1 else "pu_price"

    if sum(1 for v in values if v.lower().rstrip(".") in units) >= needed:
        return "unit"

    if sum(1 for v in values if DIMENSION_PATTERN.search(v)) >= needed:
        return "description"

    # Free text that is not itself a number or a code reads as a description
    if sum(1 for v in values if WORD_PATTERN.search(v) and not is_data_shaped(v)) >= needed:
        return "description"

    return fallback


def infer_headers(grid: Grid) -> List[str]:
    """Names every column of a headerless grid from the values it holds."""
    if not grid:
        return []
    col_count = len(grid[0])
    units = unit_tokens()

    headers: List[str] = []
    for idx in range(col_count):
        values = [str(row[idx]).strip() for row in grid if str(row[idx]).strip()]
        headers.append(_infer_column(values, idx, col_count, headers, units))
    return _dedupe(headers)


# =========================================================
#                   HEADER ROW PRESENT
# =========================================================

def map_header_row(grid: Grid, rules: Optional[List[HeaderRule]] = None) -> List[str]:
    """Maps the first grid row onto canonical names; unmatched columns keep their text."""
    rules = rules if rules is not None else load_header_rules()
    raw = [str(c or "").strip().lower() for c in grid[0]]
    last = len(raw) - 1

    mapped: List[Optional[str]] = [None] * len(raw)

    # 'amount' is a quantity when it leads the table and a line total when it ends it
    for idx, header in enumerate(raw):
        if header != "amount":
            continue
        if idx == 0 and "pu_quant" not in mapped:
            mapped[idx] = "pu_quant"
        elif idx == last and "total" not in mapped:
            mapped[idx] = "total"

    for rule in rules:
        if rule.canonical in mapped:
            continue
        claimed = {i for i, name in enumerate(mapped) if name is not None}
        idx = rule.find_column(raw, claimed)
        if idx is not None:
            mapped[idx] = rule.canonical

    if "pr_codenum" not in mapped:
        for idx in range(len(raw)):
            if mapped[idx] is not None:
                continue
            if any(PART_NUMBER_PATTERN.search(str(row[idx])) for row in grid[1:]):
                mapped[idx] = "pr_codenum"
                break

    headers = [name or raw[i] or f"column_{i + 1}" for i, name in enumerate(mapped)]
    return _dedupe(headers)


def classify_and_normalize(grid: Grid) -> ClassifiedTable:
    """
    Decides whether the grid's first row is a header row and returns canonical
    headers plus the untouched data rows.
    """
    if not grid or not grid[0]:
        return ClassifiedTable()

    if is_headerless(grid[0]):
        logger.warning(f"First row {grid[0]!r} looks like data; inferring headers from column contents.")
        return ClassifiedTable(headers=infer_headers(grid), rows=[list(r) for r in grid], headerless=True)

    headers = map_header_row(grid)
    logger.debug(f"Header row {grid[0]!r} mapped to {headers!r}")
    return ClassifiedTable(headers=headers, rows=[list(r) for r in grid[1:]], headerless=False)
