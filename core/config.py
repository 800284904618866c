"""Validated runtime settings for the catalog crawler."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from network.collector import CollectorConfig, LimitRule
from utils.error_handling import ConfigurationError
from utils.logger import parse_log_level


class ScraperConfig(BaseModel):
    """Settings shared by the category and product passes."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    target_url: str = Field(..., description="Root category page")
    output_file: str = Field("output/scraped_data.jsonl", description="JSON lines output")
    categories_file: str = Field("leaf_categories.txt", description="Leaf URL checkpoint file")
    max_retries_categories: int = Field(3, ge=1)
    max_retries_products: int = Field(3, ge=1)
    max_categories_per_page: int = Field(5, ge=0)
    max_products_per_page: int = Field(20, ge=0)
    skip_category_scraping: bool = False
    dedupe_leaves: bool = False
    log_level: str = "DEBUG"
    log_file: Optional[str] = None
    cache_dir: Optional[str] = "./cache"

    # Delay before each request to a matching domain; random_delay adds up to
    # that many extra seconds.
    delay: float = Field(2.0, ge=0)
    random_delay: float = Field(1.0, ge=0)
    domain_glob: str = "*.ebay.com"
    parallelism: int = Field(1, ge=1)
    timeout: float = Field(30.0, gt=0)
    retry_backoff: float = Field(0.0, ge=0, description="Linear backoff between stalled attempts")
    rotate_user_agent: bool = True

    # Test hook: injected httpx transport (e.g. httpx.MockTransport)
    transport: Optional[httpx.AsyncBaseTransport] = Field(None, exclude=True)

    @field_validator("target_url")
    @classmethod
    def validate_target_url(cls, v: str) -> str:
        v = v.strip()
        parsed = urlparse(v)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("target_url must be an absolute http(s) URL")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        parse_log_level(v)
        return v.strip().upper()

    @property
    def log_level_value(self) -> int:
        return parse_log_level(self.log_level)

    def collector_config(self) -> CollectorConfig:
        return CollectorConfig(
            cache_dir=self.cache_dir or None,
            timeout=self.timeout,
            rotate_user_agent=self.rotate_user_agent,
            transport=self.transport,
            limit_rules=[
                LimitRule(
                    domain_glob=self.domain_glob,
                    delay=self.delay,
                    random_delay=self.random_delay,
                    parallelism=self.parallelism,
                )
            ],
        )

    @classmethod
    def from_sources(
        cls,
        file_settings: Optional[Mapping[str, Any]] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> "ScraperConfig":
        """Merge settings-file values with explicit overrides.

        ``None`` overrides mean "not given" and leave file values in place.

        Raises:
            ConfigurationError: If the merged settings fail validation
        """
        merged: Dict[str, Any] = dict(file_settings or {})
        for key, value in (overrides or {}).items():
            if value is not None:
                merged[key] = value
        try:
            return cls(**merged)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc
