"""Catalog store and resolver.

The catalog is the sole authority for tour price and display title. Two
sources are supported:

- static: the bundled data/tours.json, loaded once per process
- dynamodb: the `tours` table, read with a short timeout and a single
  attempt; any failure falls back to the static dataset so the booking
  page keeps working when the database is unreachable
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from boto3.dynamodb.conditions import Key
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from tourbook.config import get_settings
from tourbook.models import BookingError, CatalogEntry, ErrorCode

from .dynamodb import TOURS_TABLE, DynamoDBService

logger = logging.getLogger(__name__)

DATA_FILE = Path(__file__).parent.parent / "data" / "tours.json"
TITLE_INDEX = "title_lower-index"


class CatalogUnavailableError(Exception):
    """Raised when the configured catalog source cannot be read."""


def _entry_from_item(item: dict[str, Any]) -> CatalogEntry:
    data = dict(item)
    data.pop("title_lower", None)
    if data.get("price") is not None:
        data["price"] = int(data["price"])
    if data.get("duration_hours") is not None:
        data["duration_hours"] = float(data["duration_hours"])
    if data.get("tags") is not None:
        data["tags"] = frozenset(data["tags"])
    return CatalogEntry.model_validate(data)


@lru_cache(maxsize=1)
def load_static_catalog() -> tuple[CatalogEntry, ...]:
    """Load the bundled catalog dataset."""
    with DATA_FILE.open(encoding="utf-8") as f:
        data = json.load(f)

    entries = tuple(_entry_from_item(item) for item in data.get("tours", []))
    logger.debug("Loaded %d catalog entries from %s", len(entries), DATA_FILE.name)
    return entries


class StaticCatalogSource:
    """In-memory catalog backed by the bundled dataset (or a given list)."""

    def __init__(self, entries: list[CatalogEntry] | tuple[CatalogEntry, ...] | None = None) -> None:
        self._entries = tuple(entries) if entries is not None else load_static_catalog()
        self._by_slug = {entry.slug: entry for entry in self._entries}

    def get_by_slug(self, slug: str) -> CatalogEntry | None:
        return self._by_slug.get(slug)

    def find_by_title(self, title_lower: str) -> CatalogEntry | None:
        for entry in self._entries:
            if entry.title_lower == title_lower:
                return entry
        return None

    def list_entries(self) -> list[CatalogEntry]:
        return list(self._entries)


class DynamoDBCatalogSource:
    """Catalog backed by the DynamoDB `tours` table."""

    def __init__(self, db: DynamoDBService) -> None:
        self.db = db

    def get_by_slug(self, slug: str) -> CatalogEntry | None:
        try:
            item = self.db.get_item(TOURS_TABLE, {"slug": slug})
        except (ClientError, BotoCoreError) as e:
            raise CatalogUnavailableError(str(e)) from e
        return _entry_from_item(item) if item else None

    def find_by_title(self, title_lower: str) -> CatalogEntry | None:
        try:
            items = self.db.query(
                TOURS_TABLE,
                Key("title_lower").eq(title_lower),
                index_name=TITLE_INDEX,
                limit=1,
            )
        except (ClientError, BotoCoreError) as e:
            raise CatalogUnavailableError(str(e)) from e
        return _entry_from_item(items[0]) if items else None

    def list_entries(self) -> list[CatalogEntry]:
        try:
            items = self.db.scan_all(TOURS_TABLE)
        except (ClientError, BotoCoreError) as e:
            raise CatalogUnavailableError(str(e)) from e
        return sorted((_entry_from_item(item) for item in items), key=lambda e: e.slug)


class CatalogService:
    """Resolve client tour references to authoritative catalog entries."""

    def __init__(
        self,
        primary: StaticCatalogSource | DynamoDBCatalogSource | None = None,
        fallback: StaticCatalogSource | None = None,
    ) -> None:
        """Initialize the catalog service.

        Args:
            primary: Source queried first. Defaults to the bundled dataset.
            fallback: Source used when the primary is unavailable.
        """
        self.primary = primary or StaticCatalogSource()
        self.fallback = fallback

    def _read(self, operation: str, *args: Any) -> Any:
        try:
            return getattr(self.primary, operation)(*args)
        except CatalogUnavailableError as e:
            if self.fallback is None:
                raise
            logger.warning("Catalog source unavailable (%s), using static fallback: %s", operation, e)
            return getattr(self.fallback, operation)(*args)

    def get_by_slug(self, slug: str) -> CatalogEntry | None:
        """Exact slug lookup after case and whitespace normalization.

        Stored slugs are lower-case (CatalogEntry normalizes them), so the
        reference is stripped and lower-cased before the exact match. Any
        other difference, such as a missing hyphen, is a miss.
        """
        normalized = slug.strip().lower()
        if not normalized:
            return None
        entry: CatalogEntry | None = self._read("get_by_slug", normalized)
        return entry

    def find_by_title(self, title: str) -> CatalogEntry | None:
        """Case-insensitive exact title lookup."""
        normalized = title.strip().lower()
        if not normalized:
            return None
        entry: CatalogEntry | None = self._read("find_by_title", normalized)
        return entry

    def list_entries(self) -> list[CatalogEntry]:
        """All catalog entries."""
        entries: list[CatalogEntry] = self._read("list_entries")
        return entries

    def resolve(self, slug: str | None = None, title: str | None = None) -> CatalogEntry:
        """Resolve a tour reference to its catalog entry.

        The slug is tried first; the title only when the slug is absent or
        does not match any entry.

        Raises:
            BookingError: TOUR_NOT_FOUND when neither matches.
        """
        entry = self.get_by_slug(slug) if slug else None
        if entry is None and title:
            entry = self.find_by_title(title)

        if entry is None:
            logger.info("Tour not found: slug=%s title=%s", slug, title)
            raise BookingError(
                ErrorCode.TOUR_NOT_FOUND,
                details={"slug": slug or "", "title": title or ""},
            )
        return entry


@lru_cache(maxsize=1)
def get_catalog_service() -> CatalogService:
    """Get the shared CatalogService for the configured source."""
    settings = get_settings()
    if settings.catalog_source == "dynamodb":
        config = Config(
            connect_timeout=settings.catalog_timeout_seconds,
            read_timeout=settings.catalog_timeout_seconds,
            retries={"max_attempts": 1},
        )
        return CatalogService(
            primary=DynamoDBCatalogSource(DynamoDBService(config=config)),
            fallback=StaticCatalogSource(),
        )
    return CatalogService()
