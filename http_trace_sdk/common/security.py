"""
Security utilities for credential redaction.

Recorded HTTP calls end up in debugging payloads that are served over HTTP and
written to disk, so credentials are masked before a record is stored.
"""

from typing import Dict, Iterable, Mapping, Optional, Any
from urllib.parse import urlsplit, urlunsplit

from http_trace_sdk.common.config import DEFAULT_REDACT_HEADERS
from http_trace_sdk.common.logger import get_logger

logger = get_logger(__name__)

REDACTED = "[REDACTED]"


def strip_url_credentials(url: str) -> str:
    """
    Remove the ``user:password@`` part of a URL authority.
    
    Args:
        url: Absolute URL that may carry credentials.
        
    Returns:
        The URL without userinfo; anything else is left untouched.
    """
    if not url:
        return url
    url = str(url)
    parts = urlsplit(url)
    if "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit(parts._replace(netloc=host))


class HeaderRedactor:
    """
    Credential redaction for recorded requests and responses.
    
    Header names are compared case-insensitively against the configured list;
    matching values are replaced by a placeholder.
    """
    
    def __init__(self, sensitive_headers: Optional[Iterable[str]] = None, enabled: bool = True):
        """
        Initialize the redactor.
        
        Args:
            sensitive_headers: Header names to mask (defaults to common auth headers).
            enabled: Whether redaction is enabled (can be disabled for debugging).
        """
        if sensitive_headers is None:
            sensitive_headers = DEFAULT_REDACT_HEADERS
        self.sensitive_headers = {name.lower() for name in sensitive_headers}
        self.enabled = enabled
        if not enabled:
            logger.warning("Header redaction is DISABLED - credentials may be recorded!")
    
    def redact_headers(self, headers: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Redact sensitive headers.
        
        Repeated headers keep all of their values as a list.
        
        Args:
            headers: Header mapping (an ``httpx.Headers`` or a plain dict).
            
        Returns:
            Plain dictionary with sensitive header values redacted.
        """
        result: Dict[str, Any] = {}
        items = headers.multi_items() if hasattr(headers, "multi_items") else headers.items()
        for key, value in items:
            if self.enabled and key.lower() in self.sensitive_headers:
                value = REDACTED
            if key in result:
                existing = result[key]
                if isinstance(existing, list):
                    existing.append(value)
                else:
                    result[key] = [existing, value]
            else:
                result[key] = value
        return result
    
    def redact_url(self, url: str) -> str:
        """Strip credentials from a URL."""
        return strip_url_credentials(url)

