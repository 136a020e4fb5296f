from typing import List, Tuple


DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def normalize_paging(page: int, page_size: int, max_page_size: int = MAX_PAGE_SIZE) -> Tuple[int, int]:
    p = page if page and page > 0 else 1
    ps = page_size if page_size and page_size > 0 else DEFAULT_PAGE_SIZE
    return p, min(ps, max_page_size)


def page_of(query, page: int, page_size: int) -> List:
    """Rows of a 1-based page from an already ordered query."""
    p, ps = normalize_paging(page, page_size)
    return query.offset((p - 1) * ps).limit(ps).all()
