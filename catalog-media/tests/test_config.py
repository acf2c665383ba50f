import pytest

from catalog_media.config import (
    DEFAULT_PRIMARY_ATTRIBUTES,
    CdnConfig,
    ObjectStorageConfig,
    PipelineConfig,
    load_config,
    validate_config,
)
from catalog_media.errors import ConfigurationError

FULL_ENV = {
    "CLOUDFLARE_ACCOUNT_ID": "acct",
    "CLOUDFLARE_IMAGES_API_KEY": "key",
    "R2_ACCOUNT_ID": "r2acct",
    "R2_ACCESS_KEY_ID": "ak",
    "R2_SECRET_ACCESS_KEY": "sk",
    "R2_BUCKET": "media",
}


class TestLoadConfig:
    def test_defaults(self):
        config = load_config({})
        assert config.cdn.enabled
        assert config.object_storage.enabled
        assert config.object_storage.bucket == "catalog-media"
        assert config.concurrency == 3
        assert config.chunk_delay == 0.5
        assert config.product_concurrency == 2
        assert config.download_timeout == 30
        assert config.max_file_size == 10 * 1024 * 1024
        assert config.primary_attributes == DEFAULT_PRIMARY_ATTRIBUTES
        assert config.base_url is None

    def test_reads_env(self):
        env = dict(FULL_ENV, IMAGE_CONCURRENCY="5", PRIMARY_IMAGE_ATTRIBUTES="hero, image",
                   CLOUDFLARE_IMAGES_ENABLED="false", PIM_BASE_URL="https://pim", TEMP_DIR="/var/tmp")
        config = load_config(env)
        assert config.concurrency == 5
        assert config.primary_attributes == ("hero", "image")
        assert not config.cdn.enabled
        assert config.base_url == "https://pim"
        assert config.temp_dir == "/var/tmp"
        assert config.object_storage.endpoint_url == "https://r2acct.r2.cloudflarestorage.com"


class TestValidateConfig:
    def test_complete_config_passes(self):
        config = load_config(FULL_ENV)
        assert validate_config(config) is config

    def test_missing_credentials_of_enabled_backends(self):
        with pytest.raises(ConfigurationError) as excinfo:
            validate_config(load_config({}))
        problems = excinfo.value.problems
        assert "CLOUDFLARE_ACCOUNT_ID is required when using Cloudflare Images" in problems
        assert "CLOUDFLARE_IMAGES_API_KEY is required when using Cloudflare Images" in problems
        assert "R2_ACCESS_KEY_ID is required when using R2" in problems
        assert "R2_ENDPOINT or R2_ACCOUNT_ID is required when using R2" in problems

    def test_disabled_backends_need_nothing(self):
        config = PipelineConfig(cdn=CdnConfig(enabled=False), object_storage=ObjectStorageConfig(enabled=False))
        assert validate_config(config) is config

    def test_only_enabled_backend_checked(self):
        config = load_config({"R2_ENABLED": "0", "CLOUDFLARE_ACCOUNT_ID": "acct"})
        with pytest.raises(ConfigurationError, match="CLOUDFLARE_IMAGES_API_KEY") as excinfo:
            validate_config(config)
        assert not any("R2" in problem for problem in excinfo.value.problems)

    def test_bad_concurrency(self):
        config = PipelineConfig(cdn=CdnConfig(enabled=False), object_storage=ObjectStorageConfig(enabled=False),
                                concurrency=0)
        with pytest.raises(ConfigurationError, match="IMAGE_CONCURRENCY"):
            validate_config(config)


class TestSummary:
    def test_reports_backends(self):
        summary = load_config({"R2_ENABLED": "no"}).summary()
        assert summary["cdn_enabled"] is True
        assert summary["object_storage_enabled"] is False
        assert summary["object_storage_bucket"] is None
        assert "image" in summary["image_attributes"]
