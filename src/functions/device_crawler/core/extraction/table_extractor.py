"""
Table row extraction for instrument web pages.

Turns the listing and detail pages served by the instruments into rows of
cell text. The extractor knows nothing about column meaning; the row parsers
map column positions to record fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag


@dataclass(frozen=True, slots=True)
class Link:
    """Target and inner text of the first anchor in a cell."""

    href: str
    text: str


@dataclass(frozen=True, slots=True)
class Cell:
    text: str
    link: Optional[Link] = None


@dataclass(frozen=True, slots=True)
class Row:
    """One ``<tr>`` with its ``<td>`` cells in document order."""

    cells: Tuple[Cell, ...]
    html: str

    @property
    def has_link(self) -> bool:
        return any(cell.link is not None for cell in self.cells) or "href" in self.html

    @property
    def texts(self) -> Tuple[str, ...]:
        return tuple(cell.text for cell in self.cells)

    def text_at(self, index: int, default: str = "") -> str:
        """Return the text of the cell at zero-based *index*, or *default*."""

        if 0 <= index < len(self.cells):
            return self.cells[index].text
        return default

    def link_at(self, index: int) -> Optional[Link]:
        if 0 <= index < len(self.cells):
            return self.cells[index].link
        return None


class TableExtractor:
    """Extract table rows from raw HTML.

    ``extract_rows`` returns a fresh generator on every call, so the same
    HTML can be re-parsed any number of times with identical results.
    """

    def __init__(self, parser: str = "html.parser") -> None:
        self._parser = parser

    def extract_rows(self, html: Optional[str]) -> Iterator[Row]:
        if not html or not html.strip():
            return iter(())
        return self._iter_rows(html)

    def _iter_rows(self, html: str) -> Iterator[Row]:
        soup = BeautifulSoup(html, self._parser)
        for tr in soup.find_all("tr"):
            cells = tuple(self._to_cell(td) for td in tr.find_all("td", recursive=False))
            yield Row(cells=cells, html=str(tr))

    @staticmethod
    def _to_cell(td: Tag) -> Cell:
        link = None
        anchor = td.find("a", href=True)
        if anchor is not None:
            link = Link(href=str(anchor["href"]).strip(), text=anchor.get_text().strip())
        return Cell(text=td.get_text().strip(), link=link)
