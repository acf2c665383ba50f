"""
product-images - Ingests PIM product images into Cloudflare Images and R2.

Pulls 'product-images' messages from NATS JetStream carrying PIM product
records, downloads every image they reference, uploads to the enabled
backends, and publishes one 'product-images-processed' message per product
(catalog-ready image list) plus a 'product-images-batch' summary.
"""

import functools
import logging
from typing import Optional

from catalog_media.aggregate import to_catalog_images
from catalog_media.config import PipelineConfig, load_config, validate_config
from catalog_media.models import PipelineMetrics, ProductImagesResult
from catalog_media.nats_consumer import run_consumer
from catalog_media.pipeline import MediaPipeline, pipeline_status

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def positive_option(options: dict, name: str) -> Optional[int]:
    """Read an optional integer option that must be at least 1."""
    value = options.get(name)
    if value is None:
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Option '{name}' must be an integer, got {value!r}")
    if number < 1:
        raise ValueError(f"Option '{name}' must be at least 1, got {number}")
    return number


def build_product_message(result: ProductImagesResult) -> dict:
    return {
        "product_identifier": result.product_identifier,
        "product_uuid": result.product_uuid,
        "outcome": result.outcome.value,
        "images": to_catalog_images(result.images),
        "warnings": [
            {"attribute": w.attribute, "index": w.index, "value": w.value, "reason": w.reason}
            for w in result.warnings
        ],
        "processed_at": result.processed_at,
    }


async def handle_event(data: dict, publish, stop=None, *, config: PipelineConfig,
                       metrics: Optional[PipelineMetrics] = None):
    """Handle a product-images message."""
    products = data.get("products")
    if products is None and data.get("product"):
        products = [data["product"]]
    if not products:
        raise ValueError("Missing 'products' in event data")

    options = data.get("options") or {}
    concurrency = positive_option(options, "concurrency")
    product_concurrency = positive_option(options, "product_concurrency")

    async with MediaPipeline(config, metrics=metrics, stop=stop) as pipeline:
        report = await pipeline.process_products(
            products,
            base_url=options.get("base_url"),
            concurrency=concurrency,
            product_concurrency=product_concurrency,
            force_reprocess=bool(options.get("force_reprocess", False)),
            existing_images=data.get("existing_images"),
        )

    # A batch cut short by shutdown must be nacked for redelivery, not published.
    if stop is not None and stop.is_set() and report.interrupted:
        raise RuntimeError(f"Shutdown interrupted image processing for {report.total} products")

    for result in report.results:
        if result.skipped or result.error is not None:
            continue
        await publish("product-images-processed", build_product_message(result))

    logger.info(f"Processed images for {report.processed} of {report.total} products ({len(report.errors)} errors)")
    await publish("product-images-batch", report.to_dict())


async def describe(config: PipelineConfig, metrics: PipelineMetrics, check: bool = False) -> dict:
    """Status payload for /status, with backend connection checks on request."""
    status = pipeline_status(config, metrics)
    if check:
        async with MediaPipeline(config, metrics=metrics) as pipeline:
            status["backends"] = await pipeline.check_backends()
    return status


if __name__ == "__main__":
    # Fail fast on missing credentials before touching NATS.
    config = validate_config(load_config())
    metrics = PipelineMetrics()
    run_consumer(
        handler=functools.partial(handle_event, config=config, metrics=metrics),
        job_name="product-images",
        status=functools.partial(describe, config, metrics),
    )
