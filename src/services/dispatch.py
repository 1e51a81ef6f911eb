"""HTTP delivery adapter for sending saved documents by email, SMS or WhatsApp."""

from __future__ import annotations

import logging

import httpx

from core.config import get_settings
from schemas.documents import DeliveryMethod, DispatchResult


logger = logging.getLogger(__name__)


class HttpDispatchService:
    """``EmailDispatchService`` that POSTs send requests to a delivery endpoint."""

    def __init__(
        self,
        url: str | None,
        *,
        api_key: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    async def send(
        self,
        document_id: str,
        document_type: str,
        method: DeliveryMethod,
        recipient: str,
    ) -> DispatchResult:
        if not self.url:
            return DispatchResult(success=False, error="Delivery is not configured")

        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {
            "document_id": document_id,
            "document_type": document_type,
            "method": method,
            "recipient": recipient,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(self.url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Delivery endpoint rejected %s: HTTP %s",
                document_type,
                e.response.status_code,
            )
            return DispatchResult(
                success=False, error=_error_from_response(e.response)
            )
        except httpx.TimeoutException:
            logger.warning("Delivery endpoint timed out")
            return DispatchResult(success=False, error="Delivery request timed out")
        except httpx.RequestError as e:
            logger.warning("Delivery endpoint unreachable: %s", type(e).__name__)
            return DispatchResult(success=False, error="Delivery service unavailable")

        body = _json_body(response)
        if body.get("success") is False:
            return DispatchResult(
                success=False, error=str(body.get("error") or "Failed to send")
            )
        logger.info("Dispatched %s %s via %s", document_type, document_id, method)
        return DispatchResult(success=True)


def _json_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error_from_response(response: httpx.Response) -> str:
    body = _json_body(response)
    detail = body.get("error") or body.get("detail")
    if isinstance(detail, str) and detail:
        return detail
    return f"Delivery failed: {response.status_code} {response.reason_phrase}"


def get_dispatch_service() -> HttpDispatchService:
    settings = get_settings()
    return HttpDispatchService(
        settings.DISPATCH_URL,
        api_key=settings.DISPATCH_API_KEY,
        timeout=settings.DISPATCH_TIMEOUT_SECONDS,
    )
