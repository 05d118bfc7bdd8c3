"""
Configuration Management for the HTTP Trace SDK.

This module provides Pydantic models and YAML loading for collector, storage
and web integration settings.
"""

import os
import re
from typing import List, Optional, Literal
from pathlib import Path
import yaml

from pydantic import BaseModel, Field, field_validator

from http_trace_sdk.common.logger import get_logger

logger = get_logger(__name__)

CONFIG_ENV_VAR = "HTTP_TRACE_CONFIG"

DEFAULT_REDACT_HEADERS = [
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
]


class StorageConfig(BaseModel):
    """
    Where finished debug requests are kept.
    
    Attributes:
        driver: "memory" (ring buffer) or "jsonl" (append-only file).
        path: File path used by the jsonl driver.
        max_requests: Number of debug requests to keep (None keeps everything).
    """
    driver: Literal["memory", "jsonl"] = Field(default="memory", description="Storage driver")
    path: str = Field(default="traces/requests.jsonl", description="JSONL file path")
    max_requests: Optional[int] = Field(default=200, ge=1, description="Retention limit")


class WebConfig(BaseModel):
    """
    Settings for the ASGI middleware and the payload API.
    
    Attributes:
        path_prefix: URL prefix of the payload API, never traced itself.
        ignored_paths: Incoming request paths (regexes) that are not traced.
    """
    path_prefix: str = Field(default="/__trace", description="Payload API prefix")
    ignored_paths: List[str] = Field(default_factory=list, description="Untraced path patterns")

    @field_validator('path_prefix')
    @classmethod
    def validate_path_prefix(cls, v: str) -> str:
        """Normalize the prefix to a leading slash and no trailing slash."""
        v = "/" + v.strip().strip("/")
        if v == "/":
            raise ValueError("path_prefix cannot be the site root")
        return v

    @field_validator('ignored_paths')
    @classmethod
    def validate_ignored_paths(cls, v: List[str]) -> List[str]:
        return _validate_patterns(v)


class HttpTraceConfig(BaseModel):
    """
    Complete HTTP trace configuration.
    
    Attributes:
        enabled: Whether outgoing HTTP calls are collected at all.
        collect_request_body: Record request bodies.
        collect_response_body: Record response bodies.
        max_body_size: Bodies longer than this many characters are truncated.
        collect_stack_trace: Record where in application code each call was made.
        stack_trace_limit: Maximum number of frames recorded per call.
        log_calls: Emit one structured log line per finished call.
        ignored_urls: Outgoing URLs (regexes) that are not collected.
        redaction_enabled: Mask sensitive headers (disable only for local debugging).
        redact_headers: Header names whose values are masked.
        storage: Storage settings.
        web: Web integration settings.
    """
    enabled: bool = Field(default=True, description="Collect outgoing HTTP calls")
    collect_request_body: bool = Field(default=True, description="Record request bodies")
    collect_response_body: bool = Field(default=True, description="Record response bodies")
    max_body_size: Optional[int] = Field(default=65536, ge=1, description="Body truncation limit")
    collect_stack_trace: bool = Field(default=True, description="Record caller frames")
    stack_trace_limit: int = Field(default=10, ge=0, description="Maximum recorded frames")
    log_calls: bool = Field(default=False, description="Structured log line per call")
    ignored_urls: List[str] = Field(default_factory=list, description="Uncollected URL patterns")
    redaction_enabled: bool = Field(default=True, description="Mask sensitive headers")
    redact_headers: List[str] = Field(
        default_factory=lambda: list(DEFAULT_REDACT_HEADERS),
        description="Masked header names",
    )
    storage: StorageConfig = Field(default_factory=StorageConfig)
    web: WebConfig = Field(default_factory=WebConfig)

    @field_validator('ignored_urls')
    @classmethod
    def validate_ignored_urls(cls, v: List[str]) -> List[str]:
        """Validate every pattern compiles."""
        return _validate_patterns(v)

    @field_validator('redact_headers')
    @classmethod
    def validate_redact_headers(cls, v: List[str]) -> List[str]:
        return [name.strip().lower() for name in v if name.strip()]


def _validate_patterns(patterns: List[str]) -> List[str]:
    for pattern in patterns:
        try:
            re.compile(pattern)
        except re.error as e:
            raise ValueError(f"invalid pattern '{pattern}': {e}")
    return patterns


def load_config(config_path: Optional[str] = None) -> HttpTraceConfig:
    """
    Load HTTP trace configuration from a YAML file.
    
    When no path is given the HTTP_TRACE_CONFIG environment variable is used;
    if that is unset too, the defaults are returned.
    
    Args:
        config_path: Path to the YAML configuration file.
        
    Returns:
        HttpTraceConfig instance loaded from the file.
        
    Raises:
        FileNotFoundError: If the configuration file doesn't exist.
        yaml.YAMLError: If the YAML file is invalid.
        ValidationError: If the configuration doesn't match the Pydantic model.
    """
    config_path = config_path or os.getenv(CONFIG_ENV_VAR)
    if not config_path:
        return HttpTraceConfig()

    config_file = Path(config_path)
    
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    
    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        
        if data is None:
            data = {}
        
        config = HttpTraceConfig(**data)
        logger.info(f"Loaded configuration from {config_path} (storage: {config.storage.driver})")
        return config
    
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML file {config_path}: {e}")
        raise
    except Exception as e:
        logger.error(f"Failed to load configuration from {config_path}: {e}")
        raise


def save_config(config: HttpTraceConfig, config_path: str = "http_trace.yaml") -> None:
    """
    Save HTTP trace configuration to a YAML file.
    
    Args:
        config: HttpTraceConfig instance to save.
        config_path: Path where to save the configuration file.
        
    Raises:
        IOError: If the file cannot be written.
    """
    config_file = Path(config_path)
    config_file.parent.mkdir(parents=True, exist_ok=True)
    
    try:
        data = config.model_dump()
        
        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
        
        logger.info(f"Saved configuration to {config_path}")
    
    except Exception as e:
        logger.error(f"Failed to save configuration to {config_path}: {e}")
        raise
