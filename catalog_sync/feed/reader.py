"""Streaming reader for the supplier XML feed.

The feed can be large, so records are pulled one element at a time with
lxml's iterparse and every handled element is cleared (together with the
already-processed siblings still attached to the root) before the next one
is read. Memory stays bounded by a single record element.

There is no seeking: an offset is honoured by re-scanning the document from
the start and skipping that many record elements in document order.

Record and field elements are matched by local name, so feeds that declare
a (default) XML namespace read the same as plain ones.
"""
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterator, Optional, Union

from lxml import etree
import structlog

from catalog_sync.config import SyncSettings, sync_settings
from catalog_sync.errors.exceptions import FeedOpenError
from catalog_sync.models.feed_record import FeedRecord

logger = structlog.get_logger(__name__)

def _parse_price(text: str) -> Optional[Decimal]:
    if not text:
        return None
    try:
        price = Decimal(text)
    except InvalidOperation:
        return None
    if not price.is_finite() or price < 0:
        return None
    return price


def _parse_quantity(text: str) -> Optional[int]:
    if not text:
        return None
    try:
        quantity = Decimal(text)
    except InvalidOperation:
        return None
    if not quantity.is_finite():
        return None
    return int(quantity)


def _child_text(element: etree._Element, name: str) -> str:
    """Stripped text of the first child whose local name is `name`, in any namespace."""
    for child in element:
        if isinstance(child.tag, str) and etree.QName(child).localname == name:
            return (child.text or "").strip()
    return ""


def _release(element: etree._Element) -> None:
    """Free a handled element and the processed siblings before it."""
    element.clear(keep_tail=True)
    parent = element.getparent()
    if parent is None:
        return
    while element.getprevious() is not None:
        del parent[0]


class FeedReader:
    """Lazy, forward-only reader of FeedRecords from an XML file.

    Args:
        path: Path to the feed file
        record_tag: Name of the repeating record element
        id_tag: Child element holding the external identifier
        price_tag: Child element holding the supplier price
        quantity_tag: Optional child element holding the quantity
    """

    def __init__(
        self,
        path: Union[str, Path],
        record_tag: str = "product",
        id_tag: str = "SKU",
        price_tag: str = "supplier_price",
        quantity_tag: str = "quantity",
    ):
        self.path = Path(path)
        self.record_tag = record_tag
        self.id_tag = id_tag
        self.price_tag = price_tag
        self.quantity_tag = quantity_tag

    @classmethod
    def from_settings(
        cls,
        path: Union[str, Path],
        config: SyncSettings = sync_settings,
    ) -> "FeedReader":
        """Reader using the feed layout configured in SyncSettings."""
        return cls(
            path,
            record_tag=config.record_tag,
            id_tag=config.id_tag,
            price_tag=config.price_tag,
            quantity_tag=config.quantity_tag,
        )

    def exists(self) -> bool:
        """Whether the feed path points at a regular file."""
        return self.path.is_file()

    def _elements(self) -> Iterator[etree._Element]:
        if not self.exists():
            raise FeedOpenError(f"Feed file not found: {self.path}")
        try:
            context = etree.iterparse(
                str(self.path),
                events=("end",),
                tag="{*}" + self.record_tag,
                huge_tree=True,
                resolve_entities=False,
                no_network=True,
            )
            for _, element in context:
                yield element
                _release(element)
        except (OSError, etree.XMLSyntaxError) as e:
            raise FeedOpenError(f"Failed to read feed {self.path}: {e}") from e

    def _to_record(self, element: etree._Element, position: int) -> FeedRecord:
        return FeedRecord(
            external_id=_child_text(element, self.id_tag),
            price=_parse_price(_child_text(element, self.price_tag)),
            quantity=_parse_quantity(_child_text(element, self.quantity_tag)),
            position=position,
        )

    def iter_records(
        self,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Iterator[FeedRecord]:
        """Yield records starting at ordinal `offset`, at most `limit` of them.

        Raises:
            FeedOpenError: If the file is missing, unreadable or malformed
        """
        if offset < 0:
            raise ValueError("offset must be non-negative")

        emitted = 0
        for position, element in enumerate(self._elements()):
            if position < offset:
                continue
            if limit is not None and emitted >= limit:
                return
            yield self._to_record(element, position)
            emitted += 1

        logger.debug(
            "feed_stream_exhausted",
            feed_path=str(self.path),
            offset=offset,
            emitted=emitted,
        )

    def count_records(self) -> int:
        """Count record elements with a dedicated streaming pass.

        Raises:
            FeedOpenError: If the file is missing, unreadable or malformed
        """
        count = 0
        for _ in self._elements():
            count += 1
        return count
