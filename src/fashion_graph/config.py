"""
Configuration for the fashion catalog graph.

Provides:
- Namespace URIs for schema terms and instance data
- Location of the static schema document
- Query limits for ad-hoc queries
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "FASHION_GRAPH_"

DEFAULT_ONTOLOGY_BASE_URI = "http://fashion.example.com/ontology#"
DEFAULT_DATA_BASE_URI = "http://fashion.example.com/data/"
DEFAULT_SCHEMA_PATH = Path(__file__).parent / "data" / "fashion.ttl"


@dataclass(frozen=True)
class GraphConfig:
    """Namespaces, schema location and query limits."""
    ontology_base_uri: str = DEFAULT_ONTOLOGY_BASE_URI
    data_base_uri: str = DEFAULT_DATA_BASE_URI
    schema_path: Path = DEFAULT_SCHEMA_PATH
    currency: str = "USD"
    query_timeout_seconds: Optional[float] = 30.0

    @property
    def product_uri_prefix(self) -> str:
        return self.data_base_uri + "product/"

    @property
    def category_uri_prefix(self) -> str:
        return self.data_base_uri + "category/"

    @property
    def seller_uri_prefix(self) -> str:
        return self.data_base_uri + "seller/"

    @property
    def review_uri_prefix(self) -> str:
        return self.data_base_uri + "review/"

    @property
    def user_uri_prefix(self) -> str:
        return self.data_base_uri + "user/"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ontology_base_uri": self.ontology_base_uri,
            "data_base_uri": self.data_base_uri,
            "schema_path": str(self.schema_path),
            "currency": self.currency,
            "query_timeout_seconds": self.query_timeout_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GraphConfig":
        timeout = data.get("query_timeout_seconds", 30.0)
        return cls(
            ontology_base_uri=data.get("ontology_base_uri", DEFAULT_ONTOLOGY_BASE_URI),
            data_base_uri=data.get("data_base_uri", DEFAULT_DATA_BASE_URI),
            schema_path=Path(data.get("schema_path", DEFAULT_SCHEMA_PATH)),
            currency=data.get("currency", "USD"),
            query_timeout_seconds=float(timeout) if timeout is not None else None,
        )

    @classmethod
    def from_env(cls) -> "GraphConfig":
        """
        Build a config from FASHION_GRAPH_* environment variables.

        Unset variables keep their defaults. A timeout of 0 or "none"
        disables the ad-hoc query timeout.
        """
        data: Dict[str, Any] = {}
        for key in ("ontology_base_uri", "data_base_uri", "schema_path", "currency"):
            value = os.getenv(ENV_PREFIX + key.upper())
            if value:
                data[key] = value

        timeout = os.getenv(ENV_PREFIX + "QUERY_TIMEOUT_SECONDS")
        if timeout is not None:
            if timeout.strip().lower() in ("", "0", "none", "off"):
                data["query_timeout_seconds"] = None
            else:
                try:
                    data["query_timeout_seconds"] = float(timeout)
                except ValueError:
                    logger.warning(f"Ignoring invalid query timeout: {timeout!r}")

        return cls.from_dict(data)
