import math
from dataclasses import dataclass
from typing import List, Sequence

PAGE_SIZE = 10


@dataclass
class Page:
    rows: List[List[str]]
    page: int
    page_size: int
    total_pages: int
    matching_rows: int


def filter_rows(rows: Sequence[Sequence[str]], term: str) -> List[List[str]]:
    """Rows where any cell contains the term, ignoring case"""
    needle = (term or "").strip().lower()
    if not needle:
        return [list(row) for row in rows]
    return [list(row) for row in rows if any(needle in str(cell).lower() for cell in row)]


def page_count(row_count: int, page_size: int = PAGE_SIZE) -> int:
    return math.ceil(row_count / page_size)


def paginate(rows: Sequence[Sequence[str]], page: int = 1, page_size: int = PAGE_SIZE) -> Page:
    total_pages = page_count(len(rows), page_size)
    page = min(max(page, 1), max(total_pages, 1))
    start = (page - 1) * page_size
    return Page(
        rows=[list(row) for row in rows[start:start + page_size]],
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        matching_rows=len(rows),
    )


def search_and_paginate(rows: Sequence[Sequence[str]], term: str = "", page: int = 1,
                        page_size: int = PAGE_SIZE) -> Page:
    return paginate(filter_rows(rows, term), page, page_size)
