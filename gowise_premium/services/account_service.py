"""
Account Service Client - read account / set premium flag.

All calls carry the user's bearer credential. Errors surface as
AccountServiceError with the backend's machine-readable reason when present.
"""

from typing import Any

import httpx
from pydantic import ValidationError
from structlog import get_logger

from gowise_premium.config import Settings, settings
from gowise_premium.exceptions import AccountServiceError
from gowise_premium.models.api import AccountRecord, PremiumUpdateRequest

logger = get_logger(__name__)


def _error_message(payload: Any, fallback: str) -> str:
    """Pick the backend's human-readable error from a JSON payload."""
    if isinstance(payload, dict):
        for key in ("message", "error", "reason"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback


def _parse_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        logger.warning(
            "account_service_response_not_json",
            status=response.status_code,
            url=str(response.request.url),
        )
        return None


class AccountServiceClient:
    """HTTP client for the user's account record."""

    def __init__(
        self,
        config: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or settings
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.http_timeout_seconds)
        return self._http_client

    def _url(self, template: str, user_id: str) -> str:
        return f"{self.config.backend_base_url}{template.format(user_id=user_id)}"

    @staticmethod
    def _headers(credential: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {credential}", "Content-Type": "application/json"}

    async def set_premium(self, user_id: str, credential: str) -> None:
        """
        Set the account's premium flag to true.

        Raises:
            AccountServiceError: On network failure, non-2xx, or success=false
        """
        url = self._url(self.config.account_premium_path, user_id)
        body = PremiumUpdateRequest(is_premium=True).model_dump(by_alias=True)

        logger.info("setting_premium_flag", user_id=user_id)
        try:
            response = await self.http_client.put(url, json=body, headers=self._headers(credential))
        except httpx.HTTPError as exc:
            logger.error("set_premium_request_failed", user_id=user_id, error=str(exc))
            raise AccountServiceError(f"Could not reach account service: {exc}") from exc

        payload = _parse_json(response)
        rejected = isinstance(payload, dict) and payload.get("success") is False
        if response.is_error or rejected:
            message = _error_message(
                payload, f"Could not update account (HTTP {response.status_code})"
            )
            logger.error(
                "set_premium_rejected",
                user_id=user_id,
                status=response.status_code,
                error=message,
            )
            raise AccountServiceError(message, status_code=response.status_code)

        logger.info("premium_flag_set", user_id=user_id, status=response.status_code)

    async def get_account(self, user_id: str, credential: str) -> AccountRecord:
        """
        Read the account record.

        The record may be wrapped in a ``data`` envelope.

        Raises:
            AccountServiceError: On network failure, non-2xx, or empty payload
        """
        url = self._url(self.config.account_path, user_id)

        try:
            response = await self.http_client.get(url, headers=self._headers(credential))
        except httpx.HTTPError as exc:
            logger.error("get_account_request_failed", user_id=user_id, error=str(exc))
            raise AccountServiceError(f"Could not reach account service: {exc}") from exc

        payload = _parse_json(response)
        if response.is_error:
            message = _error_message(
                payload, f"Could not read account (HTTP {response.status_code})"
            )
            logger.error(
                "get_account_rejected", user_id=user_id, status=response.status_code, error=message
            )
            raise AccountServiceError(message, status_code=response.status_code)

        data = payload.get("data", payload) if isinstance(payload, dict) else None
        if not isinstance(data, dict) or not data:
            raise AccountServiceError(
                "Account service returned no account data", status_code=response.status_code
            )

        try:
            return AccountRecord.model_validate(data)
        except ValidationError as exc:
            raise AccountServiceError(
                f"Malformed account record: {exc}", status_code=response.status_code
            ) from exc

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
