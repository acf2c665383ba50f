"""Batch orchestration for product media.

Per image: download -> upload to every enabled backend -> variants. References
run in chunks of `concurrency`; each chunk settles fully, then the pipeline
sleeps `chunk_delay` before the next one. A failing image never fails the
chunk: it comes back as a fallback ProcessedImage pointing at its original URL.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Mapping, Optional, Sequence

import aiohttp

from catalog_media.aggregate import generate_alt_text
from catalog_media.backends import UploadBackend, select_primary, upload_to_backends
from catalog_media.cdn import CdnImageBackend
from catalog_media.config import PipelineConfig
from catalog_media.downloader import download_image
from catalog_media.errors import DownloadError
from catalog_media.extractor import extract_image_references
from catalog_media.models import (
    CANCELLED,
    CDN_SERVICE,
    BatchReport,
    ImageReference,
    ImageVariants,
    PipelineMetrics,
    ProcessedImage,
    ProductImagesResult,
)
from catalog_media.prioritizer import prioritize_references
from catalog_media.r2 import ObjectStorageBackend
from catalog_media.variants import generate_variants

logger = logging.getLogger(__name__)


def build_backends(config: PipelineConfig, session: aiohttp.ClientSession,
                   log: Optional[logging.Logger] = None) -> list[UploadBackend]:
    """Instantiate the enabled backends in primary-preference order."""
    backends: list[UploadBackend] = []
    if config.cdn.enabled:
        backends.append(CdnImageBackend(config.cdn, session, log=log))
    if config.object_storage.enabled:
        backends.append(ObjectStorageBackend(config.object_storage, log=log))
    return backends


def pipeline_status(config: PipelineConfig, metrics: PipelineMetrics) -> dict:
    return {**config.summary(), "metrics": metrics.snapshot()}


def needs_processing(existing_images: Optional[Sequence], force_reprocess: bool = False) -> bool:
    return force_reprocess or not existing_images


async def gather_in_chunks(items: Sequence, worker: Callable[[int, object], Awaitable], size: int,
                           delay: float, stop: Optional[asyncio.Event] = None) -> list:
    """Run worker(position, item) over consecutive chunks of `size`.

    Returns one entry per item in input order: the worker's result, the
    exception it raised, or None if `stop` was set before its chunk started.
    """
    if size < 1:
        raise ValueError(f"Chunk size must be at least 1, got {size}")
    results: list = [None] * len(items)
    for start in range(0, len(items), size):
        if stop is not None and stop.is_set():
            break
        chunk = items[start:start + size]
        settled = await asyncio.gather(
            *(worker(start + offset, item) for offset, item in enumerate(chunk)),
            return_exceptions=True,
        )
        for offset, outcome in enumerate(settled):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            results[start + offset] = outcome
        if start + size < len(items):
            await asyncio.sleep(delay)
    return results


class MediaPipeline:
    """Downloads product images and distributes them to the storage backends.

    Use as an async context manager so the HTTP session is opened and closed::

        async with MediaPipeline(config) as pipeline:
            result = await pipeline.process_product_images(product)
    """

    def __init__(
        self,
        config: PipelineConfig,
        session: Optional[aiohttp.ClientSession] = None,
        backends: Optional[list[UploadBackend]] = None,
        log: Optional[logging.Logger] = None,
        metrics: Optional[PipelineMetrics] = None,
        stop: Optional[asyncio.Event] = None,
    ):
        self.config = config
        self.session = session
        self.backends = backends
        self.log = log or logger
        self.metrics = metrics or PipelineMetrics()
        self.stop = stop
        self._owns_session = False

    async def __aenter__(self) -> "MediaPipeline":
        if self.session is None:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        if self.backends is None:
            self.backends = build_backends(self.config, self.session, log=self.log)
        return self

    async def __aexit__(self, *exc_info):
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None
            self._owns_session = False

    def status(self) -> dict:
        return pipeline_status(self.config, self.metrics)

    async def check_backends(self) -> dict:
        """Connection check for each enabled backend.

        The checks use blocking clients, so each runs in a worker thread.
        """
        results = {}
        for backend in self.backends or []:
            check = await asyncio.to_thread(backend.check_connection)
            results[backend.service] = {"enabled": True, **check}
        return results

    # -- per image --

    def _fallback(self, reference: ImageReference, sort_order: int, alt: str,
                  error: Optional[str] = None, services: Optional[dict] = None) -> ProcessedImage:
        self.metrics.incr("fallbacks")
        return ProcessedImage(
            original_url=reference.url,
            primary_url=reference.url,
            variants=ImageVariants.single(reference.url),
            alt=alt,
            sort_order=sort_order,
            attribute=reference.attribute,
            scope=reference.scope,
            locale=reference.locale,
            provenance=reference.provenance,
            services=services or {},
            fallback=True,
            error=error,
        )

    def _cleanup(self, temp_path: Path):
        try:
            temp_path.unlink(missing_ok=True)
        except OSError as exc:
            self.metrics.incr("cleanup_failures")
            self.log.warning(f"Failed to clean up temp file {temp_path}: {exc}")

    async def _run_image(self, reference: ImageReference, sort_order: int, alt: str) -> ProcessedImage:
        try:
            asset = await download_image(
                self.session,
                reference.url,
                temp_dir=self.config.temp_dir,
                sku=reference.sku,
                timeout=self.config.download_timeout,
                max_size=self.config.max_file_size,
                allowed_mime_types=self.config.allowed_mime_types,
                user_agent=self.config.user_agent,
                log=self.log,
            )
        except DownloadError as exc:
            self.metrics.incr("download_failures")
            self.log.warning(f"Download failed for {reference.url}: {exc}")
            return self._fallback(reference, sort_order, alt, error=str(exc))
        self.metrics.incr("downloads")

        try:
            metadata = {
                "sku": reference.sku,
                "uuid": reference.uuid,
                "family": reference.family,
                "attribute": reference.attribute,
                "alt": alt,
                "scope": reference.scope,
                "locale": reference.locale,
            }
            services = await upload_to_backends(self.backends or [], asset, metadata, log=self.log)
        finally:
            self._cleanup(asset.temp_path)

        for service, result in services.items():
            self.metrics.incr(f"uploads.{service}" if result.ok else f"upload_failures.{service}")

        primary_url, fallback = select_primary(services, reference.url)
        if fallback:
            self.log.warning(f"No backend accepted {reference.url}, using original URL")
            return self._fallback(reference, sort_order, alt, services=services,
                                  error="all uploads failed" if services else None)

        return ProcessedImage(
            original_url=reference.url,
            primary_url=primary_url,
            variants=generate_variants(primary_url, services.get(CDN_SERVICE)),
            alt=alt,
            sort_order=sort_order,
            attribute=reference.attribute,
            scope=reference.scope,
            locale=reference.locale,
            provenance=reference.provenance,
            services=services,
        )

    async def process_image(self, reference: ImageReference, sort_order: int = 0,
                            alt: str = "") -> ProcessedImage:
        """Run one image through the pipeline. Never raises for per-image failures."""
        if self.session is None:
            raise RuntimeError("MediaPipeline must be entered with 'async with' before processing")
        try:
            return await asyncio.wait_for(self._run_image(reference, sort_order, alt),
                                          timeout=self.config.image_timeout)
        except asyncio.TimeoutError:
            self.log.error(f"Image {reference.url} timed out after {self.config.image_timeout}s")
            return self._fallback(reference, sort_order, alt, error="image processing timed out")
        except Exception as exc:
            self.log.exception(f"Failed to process image {reference.url}")
            return self._fallback(reference, sort_order, alt, error=str(exc))

    # -- per product --

    def references_for(self, product: dict, base_url: Optional[str] = None,
                       warnings: Optional[list] = None) -> list[ImageReference]:
        references = extract_image_references(
            product,
            base_url=base_url or self.config.base_url,
            image_attributes=self.config.image_attributes,
            warnings=warnings,
            log=self.log,
        )
        return prioritize_references(references, self.config.primary_attributes)

    def extract_without_processing(self, product: dict, base_url: Optional[str] = None) -> ProductImagesResult:
        """Fallback images for every reference, without network access."""
        result = ProductImagesResult(product.get("identifier"), product.get("uuid"))
        references = self.references_for(product, base_url, result.warnings)
        result.images = [
            self._fallback(ref, position, generate_alt_text(product, ref, self.config.name_attributes))
            for position, ref in enumerate(references)
        ]
        return result

    async def process_product_images(self, product: dict, base_url: Optional[str] = None,
                                     concurrency: Optional[int] = None,
                                     chunk_delay: Optional[float] = None) -> ProductImagesResult:
        """Process every image of one product, ordered by sort_order."""
        identifier = product.get("identifier")
        if not self.config.processing_enabled:
            self.log.info("Image processing is disabled")
            return self.extract_without_processing(product, base_url)

        result = ProductImagesResult(identifier, product.get("uuid"))
        references = self.references_for(product, base_url, result.warnings)
        if not references:
            self.log.info(f"No images found for product: {identifier}")
            return result

        alts = [generate_alt_text(product, ref, self.config.name_attributes) for ref in references]

        async def worker(position: int, reference: ImageReference) -> ProcessedImage:
            return await self.process_image(reference, position, alts[position])

        settled = await gather_in_chunks(
            references,
            worker,
            size=concurrency or self.config.concurrency,
            delay=self.config.chunk_delay if chunk_delay is None else chunk_delay,
            stop=self.stop,
        )

        images = []
        for position, (reference, outcome) in enumerate(zip(references, settled)):
            if isinstance(outcome, ProcessedImage):
                images.append(outcome)
            elif outcome is None:
                images.append(self._fallback(reference, position, alts[position], error=CANCELLED))
            else:
                images.append(self._fallback(reference, position, alts[position], error=str(outcome)))
        images.sort(key=lambda image: image.sort_order)
        result.images = images

        self.log.info(f"Processed {len(images)} images for product {identifier}")
        return result

    async def process_products(
        self,
        products: Iterable[dict],
        base_url: Optional[str] = None,
        concurrency: Optional[int] = None,
        product_concurrency: Optional[int] = None,
        force_reprocess: bool = False,
        existing_images: Optional[Mapping[str, Sequence]] = None,
    ) -> BatchReport:
        """Process many products; report {processed, total, errors}."""
        products = list(products)
        existing_images = existing_images or {}
        self.log.info(f"Processing images for {len(products)} products")

        async def worker(position: int, product: dict) -> ProductImagesResult:
            identifier = product.get("identifier")
            if not needs_processing(existing_images.get(identifier), force_reprocess):
                self.log.info(f"Skipping product {identifier}: images already stored")
                return ProductImagesResult(identifier, product.get("uuid"), skipped=True)
            return await self.process_product_images(product, base_url=base_url, concurrency=concurrency)

        settled = await gather_in_chunks(
            products,
            worker,
            size=product_concurrency or self.config.product_concurrency,
            delay=self.config.product_delay,
            stop=self.stop,
        )

        results: list[ProductImagesResult] = []
        errors: list[dict] = []
        for product, outcome in zip(products, settled):
            identifier = product.get("identifier")
            if isinstance(outcome, ProductImagesResult):
                result = outcome
            else:
                reason = CANCELLED if outcome is None else str(outcome)
                if outcome is not None:
                    self.log.error(f"Failed to process images for product {identifier}: {outcome}")
                result = ProductImagesResult(identifier, product.get("uuid"), error=reason)
            results.append(result)
            if result.error is not None:
                errors.append({"product": identifier, "error": result.error})
            for image in result.images:
                if image.error is not None:
                    errors.append({"product": identifier, "url": image.original_url, "error": image.error})

        processed = sum(1 for result in results if result.images and result.error is None)
        self.log.info(f"Completed image processing: {processed}/{len(products)} products")
        return BatchReport(processed=processed, total=len(products), errors=errors, results=results)
