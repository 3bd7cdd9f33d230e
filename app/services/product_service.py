# app/services/product_service.py
import asyncio
import csv
import io
import logging
import random
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any, TypeVar

from fastapi import HTTPException, status
from pydantic import ValidationError

from app.core.cache import ReadCache
from app.core.errors import ProductNotFound, describe_error
from app.repositories.product_repo import ProductBackend
from app.schemas.product import (
    BulkItemError,
    BulkResult,
    ImportResult,
    InvalidRow,
    ProductCreate,
    ProductUpdate,
)
from app.services.fetch_coordinator import FetchCoordinator

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Ratings handed out when an admin asks for generated ratings
RATING_CHOICES: tuple[float, ...] = (4.0, 4.5, 5.0)

# Read views that can go stale after any product write
STALE_VIEWS = ("products", "featured", "non_featured", "latest", "categories")

EXPORT_COLUMNS = [
    "product_id",
    "product_name",
    "price",
    "original_price",
    "sales",
    "category",
    "subcategory",
    "item",
    "affiliate_url",
    "image_url",
    "video_url",
    "dikirim_dari",
    "toko",
    "commission",
    "is_featured",
    "featured_order",
    "rating",
    "stock_available",
]


class ProductService:
    """
    Business logic for catalog writes.

    Responsibilities:
      - create / partial update / delete single products
      - bulk update / delete / import in bounded chunks with per-item results
      - generated ratings and featured-list curation
      - invalidating every cached read view after a successful write
    """

    def __init__(
        self,
        backend: ProductBackend,
        cache: ReadCache,
        coordinator: FetchCoordinator,
        chunk_size: int = 10,
        rng: random.Random | None = None,
    ):
        self.backend = backend
        self.cache = cache
        self.coordinator = coordinator
        self.chunk_size = max(1, chunk_size)
        self.rng = rng or random.Random()

    # ----- Helpers -----

    def _invalidate(self) -> None:
        self.cache.invalidate(*STALE_VIEWS)

    def _random_rating(self) -> float:
        return self.rng.choice(RATING_CHOICES)

    async def _insert(self, payload: ProductCreate) -> dict[str, Any]:
        row = payload.to_row()
        if row.get("rating") is None:
            row["rating"] = self._random_rating()
        return await self.backend.insert_product(row)

    async def _update(self, product_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        updated = await self.backend.update_product(product_id, fields)
        if updated is None:
            raise ProductNotFound(product_id)
        return updated

    async def _delete(self, product_id: str) -> None:
        if not await self.backend.delete_product(product_id):
            raise ProductNotFound(product_id)

    @staticmethod
    def _patch_fields(patch: ProductUpdate) -> dict[str, Any]:
        fields = patch.to_patch()
        if not fields:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No fields to update",
            )
        return fields

    async def _run_bulk(
        self,
        items: Sequence[T],
        operation: Callable[[T], Awaitable[Any]],
        key: Callable[[T], str] = str,
        cancel: asyncio.Event | None = None,
        result: BulkResult | None = None,
    ) -> BulkResult:
        """
        Apply `operation` to every item, `chunk_size` at a time.

        Each chunk is joined with return_exceptions=True, so one failure never
        cancels its siblings. `cancel` is checked between chunks; items not
        started are counted as skipped.
        """
        result = result if result is not None else BulkResult()

        for start in range(0, len(items), self.chunk_size):
            if cancel is not None and cancel.is_set():
                result.skipped += len(items) - start
                logger.info("Bulk operation cancelled, %d items skipped", result.skipped)
                break

            chunk = items[start:start + self.chunk_size]
            outcomes = await asyncio.gather(
                *(operation(item) for item in chunk),
                return_exceptions=True,
            )
            for item, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    message = describe_error(outcome)
                    logger.warning("Bulk item %s failed: %s", key(item), message)
                    result.failed += 1
                    result.errors.append(BulkItemError(key=key(item), message=message))
                else:
                    result.success += 1

        if result.success:
            self._invalidate()
        return result

    # ----- Single product -----

    async def get_product(self, product_id: str) -> dict[str, Any]:
        product = await self.coordinator.fetch_product(product_id)
        if product is None:
            raise ProductNotFound(product_id)
        return product

    async def create_product(self, payload: ProductCreate) -> dict[str, Any]:
        """
        Insert a product with defaults for everything optional.

        A rating from RATING_CHOICES is generated when none is given.
        """
        created = await self._insert(payload)
        self._invalidate()
        return created

    async def update_product(self, product_id: str, patch: ProductUpdate) -> dict[str, Any]:
        """
        Partial update: only fields present in `patch` are written.
        """
        updated = await self._update(product_id, self._patch_fields(patch))
        self._invalidate()
        return updated

    async def delete_product(self, product_id: str) -> None:
        """Permanent delete."""
        await self._delete(product_id)
        self._invalidate()

    # ----- Bulk -----

    async def bulk_update(
        self,
        product_ids: Sequence[str],
        patch: ProductUpdate,
        cancel: asyncio.Event | None = None,
    ) -> BulkResult:
        fields = self._patch_fields(patch)
        return await self._run_bulk(
            list(product_ids),
            lambda product_id: self._update(product_id, fields),
            cancel=cancel,
        )

    async def bulk_delete(
        self,
        product_ids: Sequence[str],
        cancel: asyncio.Event | None = None,
    ) -> BulkResult:
        return await self._run_bulk(list(product_ids), self._delete, cancel=cancel)

    async def generate_ratings(
        self,
        product_ids: Sequence[str],
        cancel: asyncio.Event | None = None,
    ) -> BulkResult:
        """Give every product a fresh rating drawn from RATING_CHOICES."""
        return await self._run_bulk(
            list(product_ids),
            lambda product_id: self._update(product_id, {"rating": self._random_rating()}),
            cancel=cancel,
        )

    async def bulk_create(
        self,
        payloads: Sequence[ProductCreate],
        cancel: asyncio.Event | None = None,
        result: BulkResult | None = None,
    ) -> BulkResult:
        return await self._create_keyed(
            [(f"row {index}", payload) for index, payload in enumerate(payloads, start=1)],
            cancel=cancel,
            result=result,
        )

    async def _create_keyed(
        self,
        keyed: list[tuple[str, ProductCreate]],
        cancel: asyncio.Event | None = None,
        result: BulkResult | None = None,
    ) -> BulkResult:
        return await self._run_bulk(
            keyed,
            lambda pair: self._insert(pair[1]),
            key=lambda pair: pair[0],
            cancel=cancel,
            result=result,
        )

    # ----- CSV -----

    async def import_csv(
        self,
        content: str,
        cancel: asyncio.Event | None = None,
    ) -> ImportResult:
        """
        Create products from a header-row CSV.

        Rows failing validation are reported per field and never sent to the
        backend; the valid ones are inserted in chunks.
        """
        result = ImportResult()
        valid: list[tuple[str, ProductCreate]] = []

        reader = csv.DictReader(io.StringIO(content))
        # data rows start on line 2, after the header
        for line, raw in enumerate(reader, start=2):
            row = {k.strip(): v for k, v in raw.items() if k and k.strip() in ProductCreate.model_fields}
            try:
                valid.append((f"line {line}", ProductCreate.model_validate(row)))
            except ValidationError as exc:
                result.failed += 1
                result.invalid.append(InvalidRow(row=line, errors=_field_errors(exc)))

        if result.invalid:
            logger.warning("CSV import: %d invalid rows skipped", len(result.invalid))

        await self._create_keyed(valid, cancel=cancel, result=result)
        return result

    @staticmethod
    def export_csv(rows: Iterable[dict[str, Any]]) -> str:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            writer.writerow({col: "" if row.get(col) is None else row.get(col) for col in EXPORT_COLUMNS})
        return buffer.getvalue()

    # ----- Featured curation -----

    async def add_featured(self, product_id: str) -> dict[str, Any]:
        """Append a product to the end of the featured list."""
        featured = await self.coordinator.fetch_featured()
        max_order = max((p.get("featured_order") or 0 for p in featured), default=0)
        updated = await self._update(
            product_id,
            {"is_featured": True, "featured_order": max_order + 1},
        )
        self._invalidate()
        return updated

    async def remove_featured(self, product_id: str) -> dict[str, Any]:
        updated = await self._update(product_id, {"is_featured": False})
        self._invalidate()
        return updated

    async def reorder_featured(self, product_ids: Sequence[str]) -> BulkResult:
        """
        Set featured_order to each featured product's position in `product_ids`.

        Ids that are not featured are reported as failed and take no
        position. Only products whose order actually changed are written.
        """
        current = {p["id"]: p.get("featured_order") for p in await self.coordinator.fetch_featured()}
        result = BulkResult()
        for product_id in product_ids:
            if product_id not in current:
                result.failed += 1
                result.errors.append(
                    BulkItemError(key=product_id, message=f"Product {product_id} is not featured")
                )

        featured_ids = [product_id for product_id in product_ids if product_id in current]
        changes = [
            (product_id, index)
            for index, product_id in enumerate(featured_ids)
            if current[product_id] != index
        ]
        return await self._run_bulk(
            changes,
            lambda change: self._update(change[0], {"featured_order": change[1]}),
            key=lambda change: change[0],
            result=result,
        )


def _field_errors(exc: ValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "__root__"
        errors.setdefault(field, error["msg"])
    return errors
