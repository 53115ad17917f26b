from __future__ import annotations

import re

_WS_RE = re.compile(r'\s+')
_REGION_SPLIT_RE = re.compile(r'[,\n]+')


def normalize_text(value: str | None) -> str:
    return (value or '').strip().lower()


def clean_text(value: object) -> str:
    if value is None:
        return ''
    return _WS_RE.sub(' ', str(value).strip())


def region_matches(delivery_regions: str | None, requested_location: str | None) -> bool:
    requested = normalize_text(requested_location)
    # Substring containment, not token matching: "region 1" also matches "region 10".
    return requested == '' or requested in normalize_text(delivery_regions)


def split_regions(delivery_regions: str | None) -> list[str]:
    return [clean_text(token) for token in _REGION_SPLIT_RE.split(delivery_regions or '') if token.strip()]


def offer_key(*, supplier_name: str | None, item_name: str | None, brand: str | None) -> tuple[str, str, str]:
    return (normalize_text(supplier_name), normalize_text(item_name), normalize_text(brand))
