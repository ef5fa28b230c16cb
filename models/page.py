"""
models/page.py
--------------
Caller-held paging state for student listings.
The repository stays stateless; whoever pages through results keeps one of these.
"""

from dataclasses import dataclass, replace

from config import DEFAULT_PAGE_SIZE


@dataclass(frozen=True)
class PageRequest:
    """
    One page of a name-ordered student listing.

    Attributes:
        page: 1-based page number.
        page_size: Number of records per page.
        include_inactive: Whether soft-deleted students are listed too.
    """
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    include_inactive: bool = True

    @property
    def first_row(self) -> int:
        return (self.page - 1) * self.page_size + 1

    @property
    def last_row(self) -> int:
        return self.page * self.page_size

    def next(self) -> "PageRequest":
        return replace(self, page=self.page + 1)

    def previous(self) -> "PageRequest":
        """Previous page; stays on page 1 when already there."""
        return replace(self, page=max(1, self.page - 1))

    def first(self) -> "PageRequest":
        return replace(self, page=1)
