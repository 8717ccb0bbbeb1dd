"""
Blob store client.

The store accepts multipart POSTs (``file``, ``userId``, ``folder``) and
answers ``{success, url?, error?}``; DELETE takes a JSON ``{url}`` body.
"""

import asyncio
import json
from typing import Any, Callable, Dict, Optional, Tuple

import aiohttp

from src.network.http_session import create_session
from src.utils.logger import log
from wallup_exceptions import NetworkError, StorageError


SessionFactory = Callable[[], aiohttp.ClientSession]


async def _parse_response(response: aiohttp.ClientResponse) -> Tuple[Dict[str, Any], str]:
    """Return (json payload or {}, raw text)."""
    text = await response.text()
    try:
        payload = json.loads(text) if text else {}
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    return payload, text


class BlobStoreClient:
    """POST/DELETE against the blob upload endpoint.

    Args:
        endpoint: Full URL of the blob upload API
        session_factory: Returns a new aiohttp.ClientSession per call
    """

    def __init__(self, endpoint: str, session_factory: Optional[SessionFactory] = None):
        self.endpoint = endpoint
        self._session_factory = session_factory or create_session

    async def upload(self, data: bytes, filename: str, content_type: str,
                     user_id: str, folder: str) -> str:
        """Upload bytes and return the public URL.

        Raises:
            StorageError: Non-2xx response, ``success: false`` or no URL returned
            NetworkError: Transport failure
        """
        form = aiohttp.FormData()
        form.add_field('file', data, filename=filename, content_type=content_type)
        form.add_field('userId', user_id)
        form.add_field('folder', folder)

        try:
            async with self._session_factory() as session:
                async with session.post(self.endpoint, data=form) as response:
                    payload, _ = await _parse_response(response)
                    status = response.status
                    reason = response.reason or f"HTTP {status}"
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"Upload to {folder} failed: {str(e) or type(e).__name__}") from e

        if not 200 <= status < 300:
            message = payload.get('error') or reason
            raise StorageError(message, status=status, folder=folder, details=payload)

        url = payload.get('url')
        if not payload.get('success', True) or not url:
            message = payload.get('error') or "No image URL returned"
            raise StorageError(message, status=status, folder=folder, details=payload)

        log(f"Stored {filename} in {folder}: {url}", level="debug", category="network")
        return url

    async def delete(self, url: str) -> Dict[str, Any]:
        """Delete a previously stored blob.

        Raises:
            StorageError: Non-2xx response
            NetworkError: Transport failure
        """
        try:
            async with self._session_factory() as session:
                async with session.delete(self.endpoint, json={'url': url}) as response:
                    payload, _ = await _parse_response(response)
                    status = response.status
                    reason = response.reason or f"HTTP {status}"
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"Delete failed: {str(e) or type(e).__name__}") from e

        if not 200 <= status < 300:
            raise StorageError(payload.get('error') or reason, status=status, details=payload)

        return {'status': 'success', 'url': url}
