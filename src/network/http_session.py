"""Shared aiohttp session construction."""

import ssl
from typing import Optional

import aiohttp
import certifi


USER_AGENT = "wallup/1.0"


def create_ssl_context() -> ssl.SSLContext:
    return ssl.create_default_context(cafile=certifi.where())


def create_session(timeout: Optional[float] = None) -> aiohttp.ClientSession:
    """Create a ClientSession verifying TLS against certifi's CA bundle.

    Args:
        timeout: Total per-request timeout in seconds; None leaves requests
            bounded only by the caller (the job-level timeout).
    """
    connector = aiohttp.TCPConnector(ssl=create_ssl_context())
    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout),
        headers={"User-Agent": USER_AGENT},
    )
