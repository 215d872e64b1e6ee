"""WeChat subscribe-message client used as the reminder push channel."""

import time
from typing import Any, Dict, Optional, Protocol

import httpx

from config.config import WeChatConfig
from src.utils.logger import log_debug, log_error, log_info, log_warning


# Template keys of the reminder subscribe-message
TEMPLATE_KEYS = {
    "subject": "thing5",
    "body": "thing2",
    "time": "time3",
}


class PushChannelError(Exception):
    """Raised when the push channel cannot be reached at all."""


class PushChannel(Protocol):
    """Anything that can deliver a formatted reminder to a user."""

    async def send(self, user_id: str, template_id: str, fields: Dict[str, str]) -> bool: ...


class WeChatPushChannel:
    """Client for the WeChat mini program subscribe-message API."""

    def __init__(self, config: WeChatConfig, client: Optional[httpx.AsyncClient] = None):
        """Initialize the client.

        Args:
            config: WeChat configuration
            client: Optional preconfigured HTTP client (tests pass a mock transport)
        """
        self.config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.api_base_url,
            timeout=config.timeout_seconds,
        )
        self._access_token: str = ""
        self._token_expires_at: float = 0.0

    async def _get_access_token(self) -> str:
        """Return a cached access token, fetching a new one when it expired."""
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        try:
            response = await self._client.get(
                "/cgi-bin/token",
                params={
                    "grant_type": "client_credential",
                    "appid": self.config.appid,
                    "secret": self.config.secret,
                },
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            log_error(f"Failed to fetch WeChat access token: {e}")
            raise PushChannelError(f"Failed to fetch WeChat access token: {e}") from e

        token = data.get("access_token")
        if not token:
            log_error(f"WeChat token response carried no access_token: {data}")
            raise PushChannelError(f"Failed to fetch WeChat access token: errcode={data.get('errcode')}")

        expires_in = int(data.get("expires_in", 7200))
        self._access_token = token
        self._token_expires_at = time.monotonic() + expires_in - self.config.token_refresh_margin_seconds
        log_debug("WeChat access token refreshed")
        return token

    def _template_data(self, fields: Dict[str, str]) -> Dict[str, Dict[str, str]]:
        return {TEMPLATE_KEYS[name]: {"value": value} for name, value in fields.items()}

    async def send(self, user_id: str, template_id: str, fields: Dict[str, str]) -> bool:
        """Send a subscribe message.

        The user ID doubles as the WeChat openid.

        Returns:
            True if WeChat accepted the message (``errcode == 0``)

        Raises:
            PushChannelError: If no access token could be obtained
        """
        access_token = await self._get_access_token()

        body: Dict[str, Any] = {
            "touser": user_id,
            "template_id": template_id,
            "data": self._template_data(fields),
            "page": self.config.page,
            "miniprogram_state": self.config.miniprogram_state,
            "lang": self.config.lang,
        }

        try:
            response = await self._client.post(
                "/cgi-bin/message/subscribe/send",
                params={"access_token": access_token},
                json=body,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            log_warning(f"WeChat subscribe message request failed for {user_id}: {e}")
            return False

        if data.get("errcode") == 0:
            log_info(f"WeChat subscribe message sent: {user_id}")
            return True

        log_warning(f"WeChat subscribe message rejected for {user_id}: {data}")
        return False

    async def validate_template(self, template_id: str) -> bool:
        """Check that ``template_id`` is one of the account's private templates."""
        try:
            access_token = await self._get_access_token()
            response = await self._client.get(
                "/wxaapi/newtmpl/gettemplate",
                params={"access_token": access_token},
            )
            response.raise_for_status()
            data = response.json()
        except (PushChannelError, httpx.HTTPError, ValueError) as e:
            log_error(f"Failed to validate template {template_id}: {e}")
            return False

        if data.get("errcode") != 0:
            return False
        return any(t.get("priTmplId") == template_id for t in data.get("data") or [])

    async def aclose(self) -> None:
        await self._client.aclose()
