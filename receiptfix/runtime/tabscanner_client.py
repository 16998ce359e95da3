"""Tabscanner receipt OCR client (upload, then poll for the structured result)."""

import mimetypes
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx

from receiptfix.receipt.tabscanner import TabscannerResult, normalize_tabscanner_result
from receiptfix.runtime.logging import get_logger
from receiptfix.runtime.settings import CorrectionSettings

logger = get_logger(__name__)


class TabscannerUnavailable(RuntimeError):
    """Raised when Tabscanner cannot be reached or fails to process a receipt."""


class TabscannerNotConfigured(TabscannerUnavailable):
    """Raised when no Tabscanner API key is configured."""


def _upload(client: httpx.Client, api_url: str, headers: dict[str, str], image_path: Path) -> str:
    mime_type = mimetypes.guess_type(image_path.name)[0] or "image/jpeg"
    response = client.post(
        f"{api_url}/api/2/process",
        headers=headers,
        files={"file": (image_path.name, image_path.read_bytes(), mime_type)},
    )
    if response.status_code != 200:
        # Response bodies can echo receipt text; log the status only.
        logger.error("Tabscanner upload failed: %s", response.status_code)
        raise TabscannerUnavailable(f"Tabscanner upload failed ({response.status_code})")

    token = response.json().get("token")
    if not token:
        raise TabscannerUnavailable("No processing token received from Tabscanner")
    return str(token)


def _poll(
    client: httpx.Client,
    api_url: str,
    headers: dict[str, str],
    token: str,
    settings: CorrectionSettings,
    sleep: Callable[[float], None],
) -> dict[str, Any]:
    sleep(settings.tabscanner_initial_delay)
    for attempt in range(1, settings.tabscanner_poll_attempts + 1):
        response = client.get(f"{api_url}/api/result/{token}", headers=headers)
        data = response.json()
        status = data.get("status")
        logger.debug("Tabscanner poll %d/%d: status=%s", attempt, settings.tabscanner_poll_attempts, status)

        if status == "done" and isinstance(data.get("result"), dict):
            return data["result"]
        status_code = data.get("status_code")
        if status == "error" or (isinstance(status_code, int) and status_code >= 500):
            raise TabscannerUnavailable("Tabscanner failed to process the receipt image")

        if attempt < settings.tabscanner_poll_attempts:
            sleep(settings.tabscanner_poll_interval)

    raise TabscannerUnavailable("Tabscanner processing timed out after polling")


def scan_receipt(
    image_path: Path,
    settings: CorrectionSettings,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> TabscannerResult:
    """
    Upload a receipt image to Tabscanner and wait for the structured result.

    Args:
        image_path: Receipt image on disk.
        settings: Supplies API URL/key and polling limits.
        client: Optional preconfigured httpx client (tests pass a mock transport).
        sleep: Delay function between polls.

    Raises:
        TabscannerNotConfigured: If no API key is configured.
        TabscannerUnavailable: On network failure, upload/processing errors, or poll timeout.
    """
    if not settings.tabscanner_api_key:
        raise TabscannerNotConfigured("TABSCANNER_API_KEY not configured")

    api_url = settings.tabscanner_api_url.rstrip("/")
    headers = {"apikey": settings.tabscanner_api_key}
    owns_client = client is None
    http = client or httpx.Client(timeout=settings.tabscanner_timeout)

    logger.info("Sending %s to Tabscanner at %s...", image_path.name, api_url)
    start_time = time.time()
    try:
        token = _upload(http, api_url, headers, image_path)
        raw_result = _poll(http, api_url, headers, token, settings, sleep)
    except httpx.RequestError as e:
        logger.error("Failed to connect to Tabscanner: %s", e)
        raise TabscannerUnavailable(f"Tabscanner request failed: {e}") from e
    except ValueError as e:
        # httpx raises JSONDecodeError (a ValueError) for non-JSON bodies
        raise TabscannerUnavailable(f"Tabscanner returned an unreadable response: {e}") from e
    finally:
        if owns_client:
            http.close()

    logger.info("Tabscanner returned in %.2f seconds", time.time() - start_time)
    return normalize_tabscanner_result(raw_result)
