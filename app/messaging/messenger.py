import asyncio
from typing import Protocol

import httpx
from loguru import logger
from telegram import Bot
from telegram.error import TelegramError

from app.models.schemas import OutboundMessage

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class Messenger(Protocol):
    async def send(self, to: str, body: str) -> bool: ...

    async def close(self) -> None: ...


def normalize_phone(phone: str, country_code: str = "56") -> str:
    """'whatsapp:+56 9 1234' / '091234' -> '+56...' in E.164 form."""
    digits = phone.replace("whatsapp:", "").replace("+", "").replace(" ", "")
    if not digits.startswith(country_code):
        digits = country_code + digits.lstrip("0")
    return f"+{digits}"


class TwilioMessenger:
    """WhatsApp delivery through the Twilio REST API."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        country_code: str = "56",
        client: httpx.AsyncClient | None = None,
    ):
        self.url = TWILIO_API_URL.format(sid=account_sid)
        self.from_number = from_number
        self.country_code = country_code
        self.client = client or httpx.AsyncClient(
            auth=(account_sid, auth_token), timeout=10.0
        )

    async def send(self, to: str, body: str) -> bool:
        to_number = f"whatsapp:{normalize_phone(to, self.country_code)}"
        try:
            response = await self.client.post(
                self.url,
                data={"From": self.from_number, "To": to_number, "Body": body},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Twilio delivery to {} failed: {}", to_number, e)
            return False
        logger.info("Message sent to {}", to_number)
        return True

    async def close(self) -> None:
        await self.client.aclose()


class TelegramMessenger:
    """Delivery to Telegram chats; the chat id is the sender id."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send(self, to: str, body: str) -> bool:
        try:
            await self.bot.send_message(chat_id=int(to), text=body)
        except (TelegramError, ValueError) as e:
            logger.error("Telegram delivery to {} failed: {}", to, e)
            return False
        return True

    async def close(self) -> None:
        return None


class Dispatcher:
    """Sends a turn's outbox in order; delayed messages go out as background tasks."""

    def __init__(self, messenger: Messenger):
        self.messenger = messenger
        self._tasks: set[asyncio.Task] = set()

    async def dispatch(self, outbox: list[OutboundMessage]) -> None:
        for message in outbox:
            if message.delay_seconds > 0:
                self._schedule(message)
            else:
                await self.messenger.send(message.to, message.body)

    def _schedule(self, message: OutboundMessage) -> None:
        task = asyncio.create_task(self._send_later(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send_later(self, message: OutboundMessage) -> None:
        await asyncio.sleep(message.delay_seconds)
        delivered = await self.messenger.send(message.to, message.body)
        if not delivered:
            logger.warning("Deferred message to {} was not delivered", message.to)

    async def drain(self) -> None:
        """Wait until every scheduled message has been sent."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.messenger.close()
