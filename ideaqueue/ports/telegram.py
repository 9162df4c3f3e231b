from typing import Optional

from ideaqueue.ports.base import Notifier
from ideaqueue.ports.http_utils import request_json
from ideaqueue.shared.logging_utils import warning as log_warning

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramNotifier(Notifier):
    def __init__(self, bot_token: Optional[str], chat_id: Optional[str]) -> None:
        self._token = bot_token
        self._chat_id = chat_id

    @property
    def configured(self) -> bool:
        return bool(self._token and self._chat_id)

    def send(self, text: str) -> bool:
        if not self.configured:
            log_warning(None, "telegram:not_configured")
            return False
        request_json(
            "POST",
            f"{TELEGRAM_API_URL}/bot{self._token}/sendMessage",
            service="telegram",
            json_body={"chat_id": self._chat_id, "text": text, "parse_mode": "HTML"},
        )
        return True
