"""
Async client for the license endpoint of the audiobook store API.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import aiohttp

from book_liberator.exceptions import LicenseError

from .voucher import DeviceKeys, decrypt_voucher

log = logging.getLogger(__name__)

LOCALE_DOMAINS = {
    "us": "com",
    "uk": "co.uk",
    "de": "de",
    "fr": "fr",
    "ca": "ca",
    "it": "it",
    "es": "es",
    "au": "com.au",
    "in": "in",
    "jp": "co.jp",
    "br": "com.br",
}


@dataclass
class ContentLicense:
    """The parts of a license response the decrypt pipeline needs."""

    product_id: str
    content_url: str
    key: str
    iv: str
    chapters: List[Dict[str, Any]] = field(default_factory=list)


class LicenseClient(Protocol):
    async def get_download_license(self, product_id: str) -> ContentLicense: ...


class AudibleAPIClient:
    """
    Async client for the store's JSON API.

    Only the license request is implemented; the library catalog is maintained
    locally.
    """

    LICENSE_RESPONSE_GROUPS = "last_position_heard,pdf_url,content_reference,chapter_info"

    def __init__(
        self,
        locale: str,
        access_token: str,
        device_keys: Optional[DeviceKeys] = None,
        user_agent: str = "",
        max_attempts: int = 3,
        base_delay: float = 1.5,
    ):
        """
        Initializes the API client.

        Args:
            locale: Marketplace code such as 'us' or 'uk'; picks the API domain.
            access_token: Bearer token of the account owning the books.
            device_keys: Registration data used to decrypt vouchers. Without it,
                vouchers must already be plain JSON.
            user_agent: Sent with every request.
            max_attempts: Attempts per request on transport errors.
            base_delay: Base of the exponential backoff between attempts.
        """
        domain = LOCALE_DOMAINS.get(locale.lower().strip())
        if domain is None:
            raise LicenseError(f"Unsupported locale '{locale}'.")
        self.base_url = f"https://api.audible.{domain}/"
        self.access_token = access_token
        self.device_keys = device_keys
        self.user_agent = user_agent
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._session: Optional[aiohttp.ClientSession] = None

    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            headers = {
                "Accept": "application/json",
                "Accept-Encoding": "gzip, deflate",
                "client-id": "0",
            }
            if self.access_token:
                headers["Authorization"] = f"Bearer {self.access_token}"
            if self.user_agent:
                headers["User-Agent"] = self.user_agent
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=60, connect=15, sock_read=30),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _post(self, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        await self._initialize_session()
        last_exception: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self._session.post(self.base_url + endpoint, json=body) as r:
                    if r.status in (400, 401, 403, 404):
                        detail = await r.text()
                        raise LicenseError(
                            f"License request rejected ({r.status}): {detail[:200]}"
                        )
                    r.raise_for_status()
                    return await r.json()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_exception = e
                log.debug(
                    f"POST {endpoint} attempt {attempt}/{self.max_attempts} failed: {e}"
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.base_delay * (2 ** (attempt - 1)))

        raise LicenseError(f"License request failed: {last_exception}") from last_exception

    async def get_download_license(self, product_id: str) -> ContentLicense:
        """Requests a download license and returns the stream URL with its keys."""
        body = {
            "consumption_type": "Download",
            "drm_type": "Adrm",
            "quality": "High",
            "response_groups": self.LICENSE_RESPONSE_GROUPS,
        }
        data = await self._post(f"1.0/content/{product_id}/licenserequest", body)
        return self.parse_license(product_id, data)

    def parse_license(self, product_id: str, data: Dict[str, Any]) -> ContentLicense:
        content_license = data.get("content_license") or {}
        status = content_license.get("status_code")
        if status and status != "Granted":
            message = content_license.get("message") or status
            raise LicenseError(f"License for {product_id} was not granted: {message}")

        metadata = content_license.get("content_metadata") or {}
        url = (metadata.get("content_url") or {}).get("offline_url")
        if not url:
            raise LicenseError(f"License for {product_id} has no content URL.")

        voucher = content_license.get("license_response")
        if isinstance(voucher, dict):
            key, iv = voucher.get("key"), voucher.get("iv")
        elif isinstance(voucher, str) and self.device_keys is not None:
            decrypted = decrypt_voucher(self.device_keys, product_id, voucher)
            key, iv = decrypted.key, decrypted.iv
        else:
            raise LicenseError(
                f"License for {product_id} carries an encrypted voucher but no "
                "device keys are configured."
            )
        if not key or not iv:
            raise LicenseError(f"License for {product_id} is missing its key or IV.")

        chapters = (metadata.get("chapter_info") or {}).get("chapters") or []
        return ContentLicense(product_id, url, key, iv, chapters)


class APIClientPool:
    """One client per (account, locale), created on first use."""

    def __init__(
        self,
        access_token: str,
        device_keys: Optional[DeviceKeys] = None,
        user_agent: str = "",
    ):
        self.access_token = access_token
        self.device_keys = device_keys
        self.user_agent = user_agent
        self._clients: Dict[tuple[str, str], AudibleAPIClient] = {}

    def get(self, account: str, locale: str) -> AudibleAPIClient:
        key = (account, locale.lower())
        if key not in self._clients:
            self._clients[key] = AudibleAPIClient(
                locale, self.access_token, self.device_keys, self.user_agent
            )
        return self._clients[key]

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
