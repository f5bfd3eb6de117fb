import aiohttp

from foreman.events import Update
from foreman.notifiers.base import Notifier, body_for, subject_for


def _escape_html(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


class TelegramNotifier(Notifier):
    channel = "telegram"

    def __init__(self, token: str, chat_id: str):
        self._token = token
        self._chat_id = chat_id

    def format(self, update: Update) -> str:
        return f"<b>{_escape_html(subject_for(update))}</b>\n\n{_escape_html(body_for(update))}"

    async def send(self, update: Update) -> None:
        url = f"https://api.telegram.org/bot{self._token}/sendMessage"
        payload = {"chat_id": self._chat_id, "text": self.format(update), "parse_mode": "HTML"}

        async with aiohttp.ClientSession() as session, session.post(url, json=payload) as resp:
            if resp.status != 200:
                detail = await resp.text()
                raise RuntimeError(f"Telegram send failed ({resp.status}): {detail}")
