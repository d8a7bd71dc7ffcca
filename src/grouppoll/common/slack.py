"""Minimal Slack Web API client for poll response alerts."""

import json
import logging
import time

import httpx

logger = logging.getLogger(__name__)

# Rate limit retry settings
MAX_RATE_LIMIT_RETRIES = 3
DEFAULT_RETRY_AFTER = 5  # seconds


class SlackAPIError(Exception):
    """Error from Slack API."""

    def __init__(self, error: str, response: dict | None = None):
        self.error = error
        self.response = response
        super().__init__(f"Slack API error: {error}")


class SlackClient:
    """Synchronous Slack API client."""

    def __init__(self, access_token: str, timeout: float = 30.0):
        self.access_token = access_token
        self.timeout = timeout
        self._client: httpx.Client | None = None

    def __enter__(self) -> "SlackClient":
        self._client = httpx.Client(
            base_url="https://slack.com/api/",
            headers={
                "Authorization": f"Bearer {self.access_token}",
            },
            timeout=self.timeout,
        )
        return self

    def __exit__(self, *args) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def call(self, method: str, **kwargs) -> dict:
        """Make a Slack API call with rate limit retry handling."""
        if not self._client:
            raise RuntimeError("SlackClient must be used as context manager")

        for attempt in range(MAX_RATE_LIMIT_RETRIES + 1):
            response = self._client.post(method, data=kwargs if kwargs else None)
            data = response.json()

            if data.get("ok"):
                return data

            error = data.get("error", "unknown_error")

            if error == "ratelimited" and attempt < MAX_RATE_LIMIT_RETRIES:
                try:
                    retry_after = int(response.headers.get("Retry-After", DEFAULT_RETRY_AFTER))
                except (ValueError, TypeError):
                    retry_after = DEFAULT_RETRY_AFTER
                logger.warning(
                    f"Slack rate limited on {method}, waiting {retry_after}s "
                    f"(attempt {attempt + 1}/{MAX_RATE_LIMIT_RETRIES})"
                )
                time.sleep(retry_after)
                continue

            raise SlackAPIError(error, data)

        raise SlackAPIError("ratelimited")

    def lookup_user_id(self, email: str) -> str | None:
        """Slack user id for an email address, or None if nobody has it."""
        try:
            data = self.call("users.lookupByEmail", email=email)
        except SlackAPIError as e:
            if e.error == "users_not_found":
                return None
            raise
        return data.get("user", {}).get("id")

    def post_message(self, channel: str, text: str, blocks: list[dict] | None = None) -> dict:
        payload: dict = {"channel": channel, "text": text}
        if blocks:
            payload["blocks"] = json.dumps(blocks)
        return self.call("chat.postMessage", **payload)
