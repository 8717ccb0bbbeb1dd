"""Client for the wallpaper metadata endpoint (``/api/save-wallpaper``)."""

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from src.network.blob_store_client import SessionFactory, _parse_response
from src.network.http_session import create_session
from wallup_exceptions import NetworkError, PersistenceError


class WallpaperApiClient:
    def __init__(self, save_url: str, session_factory: Optional[SessionFactory] = None):
        self.save_url = save_url
        self._session_factory = session_factory or create_session

    @staticmethod
    def build_payload(user_id: str, title: str, description: str,
                      image_url: str, thumbnail_url: str) -> Dict[str, Any]:
        return {
            'user_id': user_id,
            'title': title.strip(),
            'description': (description or '').strip() or None,
            'image_url': image_url,
            'thumbnail_url': thumbnail_url,
        }

    async def save_wallpaper(self, user_id: str, title: str, description: str,
                             image_url: str, thumbnail_url: str) -> Dict[str, Any]:
        """Persist the wallpaper record and return the stored row.

        Raises:
            PersistenceError: Non-2xx response or ``success: false``
            NetworkError: Transport failure
        """
        body = self.build_payload(user_id, title, description, image_url, thumbnail_url)
        try:
            async with self._session_factory() as session:
                async with session.post(self.save_url, json=body) as response:
                    payload, text = await _parse_response(response)
                    status = response.status
                    reason = response.reason or f"HTTP {status}"
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"Database save failed: {str(e) or type(e).__name__}") from e

        if not 200 <= status < 300 or payload.get('success') is False:
            message = payload.get('error') or text or reason
            raise PersistenceError(message, status=status, code=payload.get('code'),
                                   details=payload)

        return payload.get('data') or {}
