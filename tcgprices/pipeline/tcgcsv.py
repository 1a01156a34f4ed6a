"""
TCG Price Tracker: tcgcsv.com API Client

Thin async wrapper over the tcgcsv.com mirror of TCGplayer catalog and price
data. Every endpoint returns the envelope {success, errors, results}; any
non-2xx status raises FetchError and success=false raises ApiError.

No retries: callers decide whether a failure aborts the run or only the
current group/day.

Endpoints:
    GET /tcgplayer/categories
    GET /tcgplayer/{categoryId}/groups
    GET /tcgplayer/{categoryId}/{groupId}/products
    GET /tcgplayer/{categoryId}/{groupId}/prices
    GET /last-updated.txt
    GET /archive/tcgplayer/prices-{YYYY-MM-DD}.ppmd.7z
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Sequence

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from tcgprices.config import (
    ARCHIVE_EXTENSION,
    ARCHIVE_PATH,
    SUPPORTED_CATEGORY_IDS,
    settings,
)
from tcgprices.errors import ApiError, ArchiveNotFoundError, FetchError

logger = structlog.get_logger(__name__)

LAST_UPDATED_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


# ---------------------------------------------------------------------------
# Pydantic Response Models
# ---------------------------------------------------------------------------


class _TcgcsvModel(BaseModel):
    """Upstream payloads are camelCase; accept either spelling."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TcgcsvEnvelope(_TcgcsvModel):
    """Response wrapper shared by every JSON endpoint."""

    success: bool = False
    errors: list[str] = Field(default_factory=list)
    results: list[Any] = Field(default_factory=list)
    total_items: int | None = Field(default=None, alias="totalItems")


class TcgcsvCategory(_TcgcsvModel):
    category_id: int = Field(..., alias="categoryId")
    name: str
    display_name: str | None = Field(default=None, alias="displayName")
    modified_on: datetime | None = Field(default=None, alias="modifiedOn")


class TcgcsvGroup(_TcgcsvModel):
    group_id: int = Field(..., alias="groupId")
    name: str
    abbreviation: str | None = None
    is_supplemental: bool = Field(default=False, alias="isSupplemental")
    published_on: datetime | None = Field(default=None, alias="publishedOn")
    modified_on: datetime | None = Field(default=None, alias="modifiedOn")
    category_id: int | None = Field(default=None, alias="categoryId")


class TcgcsvPresaleInfo(_TcgcsvModel):
    is_presale: bool = Field(default=False, alias="isPresale")
    released_on: datetime | None = Field(default=None, alias="releasedOn")
    note: str | None = None


class TcgcsvExtendedData(_TcgcsvModel):
    name: str
    display_name: str | None = Field(default=None, alias="displayName")
    value: str | None = None


class TcgcsvProduct(_TcgcsvModel):
    product_id: int = Field(..., alias="productId")
    name: str
    clean_name: str | None = Field(default=None, alias="cleanName")
    image_url: str | None = Field(default=None, alias="imageUrl")
    category_id: int | None = Field(default=None, alias="categoryId")
    group_id: int = Field(..., alias="groupId")
    url: str | None = None
    modified_on: datetime | None = Field(default=None, alias="modifiedOn")
    image_count: int = Field(default=0, alias="imageCount")
    presale_info: TcgcsvPresaleInfo | None = Field(default=None, alias="presaleInfo")
    extended_data: list[TcgcsvExtendedData] = Field(
        default_factory=list, alias="extendedData"
    )

    @property
    def card_number(self) -> str | None:
        """Card number lives in the extended data entry named 'Number'."""
        for entry in self.extended_data:
            if entry.name == "Number":
                return entry.value or None
        return None


class TcgcsvPrice(_TcgcsvModel):
    """One price row: a product/subtype pair with five nullable prices."""

    product_id: int = Field(..., alias="productId")
    sub_type_name: str = Field(..., alias="subTypeName")
    low_price: Decimal | None = Field(default=None, alias="lowPrice")
    mid_price: Decimal | None = Field(default=None, alias="midPrice")
    high_price: Decimal | None = Field(default=None, alias="highPrice")
    market_price: Decimal | None = Field(default=None, alias="marketPrice")
    direct_low_price: Decimal | None = Field(default=None, alias="directLowPrice")

    @field_validator(
        "low_price",
        "mid_price",
        "high_price",
        "market_price",
        "direct_low_price",
        mode="before",
    )
    @classmethod
    def parse_decimal(cls, v: Any, info: ValidationInfo) -> Decimal | None:
        """Convert via str() so floats like 2.5 become Decimal('2.5')."""
        if v is None or v == "":
            return None
        try:
            value = Decimal(str(v))
        except (InvalidOperation, ValueError):
            value = None
        if value is None or not value.is_finite():
            logger.warning(
                "tcgcsv_price_unparsable",
                field=info.field_name,
                value=repr(v),
            )
            return None
        return value


def parse_envelope(data: Any) -> list[Any]:
    """Validate an envelope payload and return its raw results."""
    envelope = TcgcsvEnvelope.model_validate(data)
    if not envelope.success:
        raise ApiError(envelope.errors)
    return envelope.results


# ---------------------------------------------------------------------------
# API Client
# ---------------------------------------------------------------------------


class TcgcsvClient:
    """
    Async client for tcgcsv.com.

    Usage:
        async with TcgcsvClient() as client:
            categories = await client.fetch_categories()
            prices = await client.fetch_prices_for_group(3, 23237)
    """

    def __init__(
        self,
        base_url: str | None = None,
        category_ids: Sequence[int] = SUPPORTED_CATEGORY_IDS,
        timeout: float | None = None,
    ):
        self._base_url = base_url or settings.TCGCSV_BASE_URL
        self._category_ids = tuple(category_ids)
        self._timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> TcgcsvClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Accept": "application/json"},
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    @property
    def category_ids(self) -> tuple[int, ...]:
        return self._category_ids

    async def _get(self, path: str) -> httpx.Response:
        """GET a path, mapping transport failures and non-2xx to FetchError."""
        assert self._client is not None, "Client not initialized. Use 'async with'."

        try:
            response = await self._client.get(path)
        except httpx.RequestError as e:
            logger.error("tcgcsv_request_error", path=path, error=str(e))
            raise FetchError(path, None, str(e)) from e

        if not response.is_success:
            logger.error(
                "tcgcsv_http_error",
                path=path,
                status_code=response.status_code,
            )
            raise FetchError(path, response.status_code, response.reason_phrase)
        return response

    async def _get_results(self, path: str) -> list[Any]:
        response = await self._get(path)
        try:
            data = response.json()
        except ValueError as e:
            logger.error(
                "tcgcsv_invalid_json",
                path=path,
                status_code=response.status_code,
                content_type=response.headers.get("content-type"),
            )
            raise FetchError(path, response.status_code, "invalid JSON body") from e
        return parse_envelope(data)

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def fetch_categories(self) -> list[TcgcsvCategory]:
        """
        Fetch all categories and keep only the supported ones.

        Missing supported categories are logged, not treated as failures.
        """
        logger.info("tcgcsv_fetch_categories")

        results = await self._get_results("/tcgplayer/categories")
        categories = [TcgcsvCategory.model_validate(r) for r in results]
        supported = [c for c in categories if c.category_id in self._category_ids]

        found = {c.category_id for c in supported}
        missing = [cid for cid in self._category_ids if cid not in found]
        if missing:
            logger.warning("tcgcsv_categories_missing", missing_ids=missing)

        logger.info(
            "tcgcsv_fetch_categories_complete",
            total=len(categories),
            supported=len(supported),
        )
        return supported

    async def fetch_groups_for_category(self, category_id: int) -> list[TcgcsvGroup]:
        logger.info("tcgcsv_fetch_groups", category_id=category_id)

        results = await self._get_results(f"/tcgplayer/{category_id}/groups")
        groups = [TcgcsvGroup.model_validate(r) for r in results]

        logger.info(
            "tcgcsv_fetch_groups_complete",
            category_id=category_id,
            groups=len(groups),
        )
        return groups

    async def fetch_products_for_group(
        self, category_id: int, group_id: int
    ) -> list[TcgcsvProduct]:
        results = await self._get_results(f"/tcgplayer/{category_id}/{group_id}/products")
        return [TcgcsvProduct.model_validate(r) for r in results]

    async def fetch_prices_for_group(
        self, category_id: int, group_id: int
    ) -> list[TcgcsvPrice]:
        results = await self._get_results(f"/tcgplayer/{category_id}/{group_id}/prices")
        return [TcgcsvPrice.model_validate(r) for r in results]

    async def fetch_last_updated_timestamp(self) -> datetime:
        """
        Fetch the upstream snapshot time, e.g. '2025-11-11T20:07:06+0000'.

        Used as recorded_at for live price ingestion.
        """
        response = await self._get("/last-updated.txt")
        raw = response.text.strip()
        recorded_at = datetime.strptime(raw, LAST_UPDATED_FORMAT)

        logger.info("tcgcsv_last_updated", last_updated=recorded_at.isoformat())
        return recorded_at

    async def download_archive(self, day: date, destination: Path) -> int:
        """
        Stream the price archive for `day` to `destination`.

        Raises:
            ArchiveNotFoundError: no archive published for that day (404).
            FetchError: any other non-2xx status or transport failure.

        Returns:
            Number of bytes written.
        """
        assert self._client is not None, "Client not initialized. Use 'async with'."

        path = archive_path_for(day)
        logger.info("tcgcsv_archive_download", day=day.isoformat(), path=path)

        written = 0
        try:
            async with self._client.stream("GET", path) as response:
                if response.status_code == 404:
                    raise ArchiveNotFoundError(day)
                if not response.is_success:
                    raise FetchError(path, response.status_code, response.reason_phrase)

                with open(destination, "wb") as fh:
                    async for block in response.aiter_bytes():
                        fh.write(block)
                        written += len(block)
        except httpx.RequestError as e:
            raise FetchError(path, None, str(e)) from e

        logger.info(
            "tcgcsv_archive_download_complete",
            day=day.isoformat(),
            bytes=written,
        )
        return written


def archive_path_for(day: date) -> str:
    return f"/{ARCHIVE_PATH}/prices-{day.isoformat()}.{ARCHIVE_EXTENSION}"
