"""
Tests for fail-fast configuration.
"""

import pytest

from userbase.config import ConfigurationError, Settings

VALID = {
    "database_url": "postgresql+asyncpg://u:p@localhost/db",
    "key_encryption_secret": "a-sufficiently-long-secret",
}


class TestSettings:
    def test_valid_settings(self):
        config = Settings(**VALID)

        assert config.is_production is False
        assert config.read_database_url == VALID["database_url"]

    def test_node_list_is_parsed_in_order(self):
        config = Settings(**VALID, hive_api_nodes=" https://a.example/ , https://b.example,, ")

        assert config.hive_node_list == ["https://a.example", "https://b.example"]

    def test_missing_database_url(self):
        with pytest.raises(ConfigurationError, match="DATABASE_URL is required"):
            Settings(database_url="", key_encryption_secret=VALID["key_encryption_secret"])

    def test_non_postgres_database(self):
        with pytest.raises(ConfigurationError, match="PostgreSQL"):
            Settings(database_url="sqlite:///x.db", key_encryption_secret="a-sufficiently-long")

    def test_missing_master_secret(self):
        with pytest.raises(ConfigurationError, match="KEY_ENCRYPTION_SECRET is required"):
            Settings(database_url=VALID["database_url"], key_encryption_secret="")

    def test_short_master_secret(self):
        with pytest.raises(ConfigurationError, match="at least 16"):
            Settings(database_url=VALID["database_url"], key_encryption_secret="short")

    def test_unknown_environment(self):
        with pytest.raises(ConfigurationError, match="ENVIRONMENT"):
            Settings(**VALID, environment="staging")

    def test_unknown_cost_type(self):
        with pytest.raises(ConfigurationError, match="SPONSORSHIP_DEFAULT_COST_TYPE"):
            Settings(**VALID, sponsorship_default_cost_type="free")

    def test_empty_node_list(self):
        with pytest.raises(ConfigurationError, match="HIVE_API_NODES"):
            Settings(**VALID, hive_api_nodes=" , ")

    def test_production_flag(self):
        assert Settings(**VALID, environment="production").is_production is True
