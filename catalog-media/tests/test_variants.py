from catalog_media.models import BackendUploadResult, ImageVariants
from catalog_media.variants import generate_variants, is_transformable

PUBLIC = "https://imagedelivery.net/hash123/SKU1_abc/public"


def _cdn(url=PUBLIC, error=None):
    if error:
        return BackendUploadResult(service="cdn", error=error)
    return BackendUploadResult(service="cdn", id="SKU1_abc", url=url, variants=[url])


class TestGenerateVariants:
    def test_cdn_directives(self):
        variants = generate_variants(PUBLIC, _cdn())
        assert variants.thumbnail == "https://imagedelivery.net/hash123/SKU1_abc/w=150,h=150,fit=crop"
        assert variants.medium == "https://imagedelivery.net/hash123/SKU1_abc/w=500,h=500,fit=scale-down"
        assert variants.large == "https://imagedelivery.net/hash123/SKU1_abc/w=1200,h=1200,fit=scale-down"
        assert variants.original == PUBLIC

    def test_no_cdn_result_is_noop(self):
        assert generate_variants("https://bucket/products/a.jpg") == ImageVariants.single("https://bucket/products/a.jpg")

    def test_failed_cdn_is_noop(self):
        url = "https://bucket/products/a.jpg"
        assert generate_variants(url, _cdn(error="down")) == ImageVariants.single(url)

    def test_primary_not_from_cdn_is_noop(self):
        url = "https://bucket/products/SKU1/a.jpg"
        assert generate_variants(url, _cdn()) == ImageVariants.single(url)

    def test_cdn_without_variant_list_is_noop(self):
        result = BackendUploadResult(service="cdn", id="x", url=PUBLIC, variants=[])
        assert generate_variants(PUBLIC, result) == ImageVariants.single(PUBLIC)

    def test_short_path_is_noop(self):
        url = "https://cdn.example.com/a.jpg"
        assert not is_transformable(url, _cdn(url))
        assert generate_variants(url, _cdn(url)).thumbnail == url

    def test_idempotent(self):
        assert generate_variants(PUBLIC, _cdn()) == generate_variants(PUBLIC, _cdn())

    def test_query_string_preserved(self):
        url = PUBLIC + "?v=2"
        variants = generate_variants(url, _cdn(url))
        assert variants.medium.endswith("/w=500,h=500,fit=scale-down?v=2")

    def test_every_variant_is_a_string(self):
        for variants in (generate_variants(PUBLIC, _cdn()), generate_variants("https://src/a.jpg")):
            assert all(isinstance(value, str) and value for value in variants.to_dict().values())
