"""
Lazy page sequences for provider listing APIs

Copyright 2025 HyperSec

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

from typing import Any, Callable, Generic, Iterator, List, Optional, Tuple, TypeVar

T = TypeVar("T")

PageFetcher = Callable[[Any], Tuple[List[T], Optional[Any]]]


class Paginator(Generic[T]):
    """
    Finite, restartable sequence of pages.

    fetch_page receives a cursor and returns the items of that page along
    with the cursor of the next page, or None on the terminal page. Every
    iteration starts again from the first cursor, so a Paginator can be
    iterated more than once.
    """

    def __init__(self, fetch_page: PageFetcher, first_cursor: Any = 1):
        self.fetch_page = fetch_page
        self.first_cursor = first_cursor

    def __iter__(self) -> Iterator[List[T]]:
        cursor = self.first_cursor
        seen = set()
        while cursor is not None:
            # A provider that hands back a cursor it already served would loop forever
            if cursor in seen:
                break
            seen.add(cursor)
            items, cursor = self.fetch_page(cursor)
            yield items

    def items(self) -> Iterator[T]:
        for page in self:
            yield from page

    def collect(self) -> List[T]:
        return list(self.items())


def numbered_pages(
    fetch: Callable[[int], List[T]], per_page: int, first_page: int = 1
) -> Paginator[T]:
    """Paginator for APIs addressed by page number; a short page is the last one."""

    def fetch_page(page: int) -> Tuple[List[T], Optional[int]]:
        items = list(fetch(page))
        next_page = page + 1 if len(items) >= per_page else None
        return items, next_page

    return Paginator(fetch_page, first_cursor=first_page)
