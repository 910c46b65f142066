"""
Tests for graph configuration.
"""

from pathlib import Path

from fashion_graph.config import GraphConfig, DEFAULT_SCHEMA_PATH


class TestGraphConfig:
    """Test defaults and derived prefixes."""

    def test_defaults(self):
        """Test default namespaces and timeout."""
        config = GraphConfig()
        assert config.ontology_base_uri == "http://fashion.example.com/ontology#"
        assert config.data_base_uri == "http://fashion.example.com/data/"
        assert config.schema_path == DEFAULT_SCHEMA_PATH
        assert config.currency == "USD"
        assert config.query_timeout_seconds == 30.0

    def test_bundled_schema_exists(self):
        """Test the bundled schema document ships with the package."""
        assert DEFAULT_SCHEMA_PATH.exists()

    def test_uri_prefixes(self):
        """Test prefixes are derived from the data namespace."""
        config = GraphConfig(data_base_uri="http://shop.example/data/")
        assert config.product_uri_prefix == "http://shop.example/data/product/"
        assert config.category_uri_prefix == "http://shop.example/data/category/"
        assert config.seller_uri_prefix == "http://shop.example/data/seller/"
        assert config.review_uri_prefix == "http://shop.example/data/review/"
        assert config.user_uri_prefix == "http://shop.example/data/user/"

    def test_dict_roundtrip(self):
        """Test to_dict/from_dict preserve every field."""
        config = GraphConfig(currency="EUR", query_timeout_seconds=5.0, schema_path=Path("/tmp/x.ttl"))
        assert GraphConfig.from_dict(config.to_dict()) == config

    def test_from_dict_without_timeout(self):
        """Test a None timeout survives from_dict."""
        config = GraphConfig.from_dict({"query_timeout_seconds": None})
        assert config.query_timeout_seconds is None


class TestConfigFromEnv:
    """Test environment-driven configuration."""

    def test_env_overrides(self, monkeypatch):
        """Test FASHION_GRAPH_* variables override defaults."""
        monkeypatch.setenv("FASHION_GRAPH_DATA_BASE_URI", "http://env.example/data/")
        monkeypatch.setenv("FASHION_GRAPH_CURRENCY", "GBP")
        monkeypatch.setenv("FASHION_GRAPH_QUERY_TIMEOUT_SECONDS", "2.5")

        config = GraphConfig.from_env()
        assert config.data_base_uri == "http://env.example/data/"
        assert config.currency == "GBP"
        assert config.query_timeout_seconds == 2.5
        assert config.ontology_base_uri == "http://fashion.example.com/ontology#"

    def test_timeout_disabled(self, monkeypatch):
        """Test a timeout of 'none' disables it."""
        monkeypatch.setenv("FASHION_GRAPH_QUERY_TIMEOUT_SECONDS", "none")
        assert GraphConfig.from_env().query_timeout_seconds is None

    def test_invalid_timeout_keeps_default(self, monkeypatch):
        """Test an unparsable timeout falls back to the default."""
        monkeypatch.setenv("FASHION_GRAPH_QUERY_TIMEOUT_SECONDS", "soon")
        assert GraphConfig.from_env().query_timeout_seconds == 30.0
