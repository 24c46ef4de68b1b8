"""
Notification delivery.

Targets are shoutrrr-style URLs so one setting selects both transport and
destination:

  telegram://<bot_token>@telegram?chats=<chat_id>[,<chat_id>...]
  discord://<webhook_token>@<webhook_id>
  generic+https://hooks.example.net/path   (POST {"message": ...})
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol
from urllib.parse import parse_qs, urlsplit, urlunsplit

import httpx
import structlog

from uptime_monitor.errors import ConfigError, NotificationError


logger = structlog.get_logger(__name__)

TELEGRAM_MAX_MESSAGE_LEN = 3900
SEND_TIMEOUT_SECONDS = 15.0


class Notifier(Protocol):
    async def send(self, message: str) -> None: ...


@dataclass(frozen=True)
class TelegramTarget:
    bot_token: str
    chat_ids: tuple[str, ...]


@dataclass(frozen=True)
class DiscordTarget:
    webhook_id: str
    token: str

    @property
    def url(self) -> str:
        return f"https://discord.com/api/webhooks/{self.webhook_id}/{self.token}"


@dataclass(frozen=True)
class GenericTarget:
    url: str


Target = TelegramTarget | DiscordTarget | GenericTarget


def parse_notify_url(url: str) -> Target:
    raw = str(url or "").strip()
    if not raw:
        raise ConfigError("Empty notification URL")
    parts = urlsplit(raw)
    scheme = parts.scheme.lower()

    if scheme == "telegram":
        token = parts.username or ""
        if parts.password:
            # Bot tokens look like "123:abc", which urlsplit reads as user:password.
            token = f"{token}:{parts.password}"
        chats_raw = ",".join(parse_qs(parts.query).get("chats", []))
        chats = tuple(c.strip() for c in chats_raw.split(",") if c.strip())
        if not token or not chats:
            raise ConfigError("telegram URL needs a bot token and ?chats=<chat_id>")
        return TelegramTarget(bot_token=token, chat_ids=chats)

    if scheme == "discord":
        token = parts.username or ""
        webhook_id = parts.hostname or ""
        if not token or not webhook_id:
            raise ConfigError("discord URL must look like discord://<token>@<webhook_id>")
        return DiscordTarget(webhook_id=webhook_id, token=token)

    if scheme in {"generic+https", "generic+http"}:
        real_scheme = scheme.split("+", 1)[1]
        if not parts.netloc:
            raise ConfigError("generic URL is missing a host")
        return GenericTarget(url=urlunsplit((real_scheme, parts.netloc, parts.path, parts.query, "")))

    raise ConfigError(f"Unsupported notification scheme: {scheme or '<none>'}")


def split_message(text: str, *, max_len: int = TELEGRAM_MAX_MESSAGE_LEN) -> list[str]:
    s = (text or "").strip()
    if not s:
        return [""]
    max_len = max(1, int(max_len))
    parts: list[str] = []
    while len(s) > max_len:
        # Prefer a line break, unless that would leave a tiny chunk.
        cut = s.rfind("\n", 0, max_len + 1)
        if cut < max_len * 0.6:
            cut = max_len
        parts.append(s[:cut].rstrip())
        s = s[cut:].lstrip()
    if s:
        parts.append(s)
    return parts


def _redact(msg: str, secret: str) -> str:
    return msg.replace(secret, "<redacted>") if secret else msg


async def _send_telegram(client: httpx.AsyncClient, target: TelegramTarget, message: str) -> None:
    api = f"https://api.telegram.org/bot{target.bot_token}/sendMessage"
    for chat_id in target.chat_ids:
        for part in split_message(message):
            try:
                resp = await client.post(api, json={"chat_id": chat_id, "text": part}, timeout=SEND_TIMEOUT_SECONDS)
                data = resp.json()
            except (httpx.HTTPError, ValueError) as exc:
                raise NotificationError(
                    _redact(f"telegram send failed: {type(exc).__name__}: {exc}", target.bot_token),
                    details={"chat_id": chat_id},
                ) from exc
            if not isinstance(data, dict):
                raise NotificationError(
                    f"telegram returned an unexpected body (HTTP {resp.status_code})",
                    details={"chat_id": chat_id},
                )
            if not data.get("ok"):
                raise NotificationError(
                    "telegram rejected message",
                    details={"chat_id": chat_id, "description": str(data.get("description") or "")[:300]},
                )


async def _post_json(client: httpx.AsyncClient, url: str, payload: dict, *, secret: str = "") -> None:
    try:
        resp = await client.post(url, json=payload, timeout=SEND_TIMEOUT_SECONDS)
    except httpx.HTTPError as exc:
        raise NotificationError(_redact(f"webhook send failed: {type(exc).__name__}: {exc}", secret)) from exc
    if resp.status_code >= 400:
        raise NotificationError(
            f"webhook returned HTTP {resp.status_code}",
            details={"status_code": resp.status_code},
        )


async def send(client: httpx.AsyncClient, url: str, message: str) -> None:
    """Deliver `message` to the target described by `url`. Raises NotificationError on failure."""
    target = parse_notify_url(url)
    if isinstance(target, TelegramTarget):
        await _send_telegram(client, target, message)
    elif isinstance(target, DiscordTarget):
        # Discord caps message content at 2000 characters.
        await _post_json(client, target.url, {"content": message[:2000]}, secret=target.token)
    else:
        await _post_json(client, target.url, {"message": message})


class UrlNotifier:
    def __init__(self, client: httpx.AsyncClient, url: str):
        # Parse eagerly so a bad URL fails at startup rather than on the first outage.
        parse_notify_url(url)
        self._client = client
        self._url = url

    async def send(self, message: str) -> None:
        await send(self._client, self._url, message)
        logger.info("notification_sent", scheme=urlsplit(self._url).scheme)


class NullNotifier:
    async def send(self, message: str) -> None:
        logger.debug("notification_skipped", reason="no target configured", message=message)


def build_notifier(client: httpx.AsyncClient, url: str | None) -> Notifier:
    if url and url.strip():
        return UrlNotifier(client, url.strip())
    return NullNotifier()
