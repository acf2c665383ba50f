from catalog_media.aggregate import extract_product_name, generate_alt_text, to_catalog_images
from catalog_media.models import BackendUploadResult, ImageReference, ImageVariants, ProcessedImage


def _ref(index=0, attribute="gallery"):
    return ImageReference(url="https://src/a.jpg", attribute=attribute, index=index)


class TestExtractProductName:
    def test_first_name_like_attribute(self):
        product = {"values": {"title": [{"data": "Title"}], "name": [{"data": "Name"}]}}
        assert extract_product_name(product) == "Name"

    def test_skips_empty_values(self):
        product = {"values": {"name": [{"data": ""}, {"data": None}], "label": [{"locale": "en", "data": "Label"}]}}
        assert extract_product_name(product) == "Label"

    def test_none_when_missing(self):
        assert extract_product_name({"values": {"color": [{"data": "red"}]}}) is None
        assert extract_product_name({}) is None


class TestGenerateAltText:
    def test_name_for_first_image(self):
        product = {"identifier": "SKU1", "values": {"name": [{"data": "Blue Shirt"}]}}
        assert generate_alt_text(product, _ref(0)) == "Blue Shirt"

    def test_index_suffix_from_second_image(self):
        product = {"identifier": "SKU1", "values": {"name": [{"data": "Blue Shirt"}]}}
        assert generate_alt_text(product, _ref(1)) == "Blue Shirt - Image 2"
        assert generate_alt_text(product, _ref(4)) == "Blue Shirt - Image 5"

    def test_falls_back_to_identifier(self):
        assert generate_alt_text({"identifier": "SKU1"}, _ref(0)) == "SKU1"

    def test_generic_when_nothing_known(self):
        assert generate_alt_text({}, _ref(0)) == "Product Image"


class TestToCatalogImages:
    def test_processed_image_shape(self):
        cdn = BackendUploadResult(service="cdn", id="cf-1", url="https://cdn/x/cf-1/public", variants=["v"])
        storage = BackendUploadResult(service="object_storage", key="products/SKU1/a.jpg", url="https://r2/a.jpg")
        image = ProcessedImage(
            original_url="https://src/a.jpg",
            primary_url="https://cdn/x/cf-1/public",
            variants=ImageVariants("t", "m", "l", "https://cdn/x/cf-1/public"),
            alt="Blue Shirt",
            sort_order=0,
            attribute="image",
            scope="ecommerce",
            locale="en_US",
            services={"cdn": cdn, "object_storage": storage},
            processed_at="2025-01-01T00:00:00+00:00",
        )

        [entry] = to_catalog_images([image])

        assert entry == {
            "url": "https://cdn/x/cf-1/public",
            "alt": "Blue Shirt",
            "sort_order": 0,
            "variants": {"thumbnail": "t", "medium": "m", "large": "l", "original": "https://cdn/x/cf-1/public"},
            "metadata": {
                "cdn_id": "cf-1",
                "object_storage_key": "products/SKU1/a.jpg",
                "processed_at": "2025-01-01T00:00:00+00:00",
                "fallback": False,
                "attribute": "image",
                "scope": "ecommerce",
                "locale": "en_US",
            },
        }

    def test_failed_backends_have_no_ids(self):
        image = ProcessedImage(
            original_url="https://src/a.jpg",
            primary_url="https://src/a.jpg",
            variants=ImageVariants.single("https://src/a.jpg"),
            alt="",
            sort_order=3,
            attribute="gallery",
            services={"cdn": BackendUploadResult(service="cdn", error="down")},
            fallback=True,
        )
        [entry] = to_catalog_images([image])
        assert entry["url"] == "https://src/a.jpg"
        assert entry["sort_order"] == 3
        assert entry["metadata"]["cdn_id"] is None
        assert entry["metadata"]["object_storage_key"] is None
        assert entry["metadata"]["fallback"] is True
