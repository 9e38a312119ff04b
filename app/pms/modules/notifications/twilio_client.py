from __future__ import annotations

import base64
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


class SmsError(RuntimeError):
    pass


@dataclass(frozen=True)
class TwilioClient:
    account_sid: str
    auth_token: str
    from_number: str = ""
    messaging_service_sid: str = ""
    base_url: str = "https://api.twilio.com/2010-04-01"
    timeout_seconds: int = 30

    @classmethod
    def from_config(cls, config: Any) -> "TwilioClient":
        return cls(
            account_sid=(config.get("TWILIO_ACCOUNT_SID") or "").strip(),
            auth_token=(config.get("TWILIO_AUTH_TOKEN") or "").strip(),
            from_number=(config.get("TWILIO_FROM_NUMBER") or "").strip(),
            messaging_service_sid=(config.get("TWILIO_MESSAGING_SERVICE_SID") or "").strip(),
        )

    def _auth_header(self) -> str:
        token = f"{self.account_sid}:{self.auth_token}".encode("utf-8")
        return "Basic " + base64.b64encode(token).decode("ascii")

    def _form(self, to: str, body: str) -> dict[str, str]:
        form = {"To": to, "Body": body}
        if self.messaging_service_sid:
            form["MessagingServiceSid"] = self.messaging_service_sid
        elif self.from_number:
            form["From"] = self.from_number
        else:
            raise SmsError("Twilio From number or Messaging Service SID is required.")
        return form

    def send_sms(self, to: str, body: str) -> dict[str, Any]:
        """Sends one message; returns the provider's message resource (has "sid")."""
        if not self.account_sid or not self.auth_token:
            raise SmsError("Twilio credentials are missing.")
        data = urllib.parse.urlencode(self._form(to, body)).encode("utf-8")
        url = f"{self.base_url.rstrip('/')}/Accounts/{urllib.parse.quote(self.account_sid)}/Messages.json"

        req = urllib.request.Request(url, data=data, method="POST")
        req.add_header("Authorization", self._auth_header())
        req.add_header("Content-Type", "application/x-www-form-urlencoded")
        req.add_header("Accept", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            try:
                detail = e.read().decode("utf-8", errors="ignore")
            except Exception:
                detail = ""
            logger.warning("Twilio rejected SMS (HTTP %s): %s", e.code, detail[:300])
            raise SmsError(f"Twilio error: {detail[:300] or e.code}") from e
        except urllib.error.URLError as e:
            raise SmsError(f"Twilio request failed: {e.reason}") from e

        try:
            result = json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise SmsError("Invalid JSON from Twilio") from e
        return result if isinstance(result, dict) else {}
