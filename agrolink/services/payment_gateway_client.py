# agrolink/services/payment_gateway_client.py
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import requests

from agrolink.errors import RemoteUnavailableError

log = logging.getLogger(__name__)

# Retry these (typical transient / cold start / gateway)
RETRY_STATUS = {502, 503, 504}

# statuses the processor reports for a captured payment
CONFIRMED_STATUSES = {"success", "captured", "paid", "succeeded"}


class PaymentGatewayError(RemoteUnavailableError):
    """Processor unreachable or answering garbage; the payer may retry."""


def _safe_json(resp: requests.Response) -> Optional[Dict[str, Any]]:
    """
    Return JSON dict if response body is JSON, else None.
    Handles HTML error pages from proxies safely.
    """
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else {"data": data}


class PaymentGatewayClient:
    """
    Server-side check of a payment reference reported by the checkout widget.

    With no base URL configured the widget's own outcome is trusted
    (status == "success" and a non-empty reference).
    """

    def __init__(self, base_url: str = "", timeout: int = 20, max_retries: int = 3,
                 http: Optional[requests.Session] = None, sleep=time.sleep):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.max_retries = max(int(max_retries), 1)
        self.http = http or requests.Session()
        self.sleep = sleep

    @classmethod
    def from_config(cls, config) -> "PaymentGatewayClient":
        return cls(
            base_url=config.get("PAYMENT_GATEWAY_BASE_URL", ""),
            timeout=config.get("PAYMENT_GATEWAY_TIMEOUT", 20),
            max_retries=config.get("PAYMENT_GATEWAY_MAX_RETRIES", 3),
        )

    def _get(self, url: str) -> requests.Response:
        """
        GET with:
          - retry on 502/503/504 and network timeouts
          - bounded timeout on every attempt
        """
        last_err: Optional[str] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                resp = self.http.get(url, timeout=self.timeout, allow_redirects=True)
            except (requests.Timeout, requests.ConnectionError) as e:
                last_err = f"Network error on {url}: {e}"
            else:
                if resp.status_code not in RETRY_STATUS:
                    return resp
                last_err = f"Upstream error {resp.status_code} on {url}"

            log.warning("payment gateway attempt %s/%s failed: %s", attempt, self.max_retries, last_err)
            if attempt < self.max_retries:
                self.sleep(0.6 * (2 ** (attempt - 1)))

        raise PaymentGatewayError("Payment processor is not responding. Please retry.")

    def verify(self, payment_ref: str, amount: Optional[float] = None,
               reported_status: str = "success") -> Dict[str, Any]:
        """
        Returns {"confirmed": bool, "error": str | None}.
        Raises PaymentGatewayError when the processor cannot be reached.
        """
        payment_ref = (payment_ref or "").strip()
        if not payment_ref:
            return {"confirmed": False, "error": "missing payment reference"}

        if not self.base_url:
            ok = (reported_status or "").lower() == "success"
            return {"confirmed": ok, "error": None if ok else f"payment {reported_status}"}

        resp = self._get(f"{self.base_url}/payments/{payment_ref}")
        data = _safe_json(resp)

        if resp.status_code == 404:
            return {"confirmed": False, "error": "unknown payment reference"}
        if data is None:
            snippet = (resp.text or "").strip().replace("\n", " ")[:240]
            log.error("payment gateway returned non-JSON (%s): %s", resp.status_code, snippet)
            raise PaymentGatewayError("Payment processor returned an unexpected response.")
        if resp.status_code >= 400:
            msg = data.get("message") or data.get("error") or f"HTTP {resp.status_code}"
            return {"confirmed": False, "error": str(msg)}

        status = str(data.get("status") or "").lower()
        if status not in CONFIRMED_STATUSES:
            return {"confirmed": False, "error": f"payment {status or 'unconfirmed'}"}

        if amount is not None and data.get("amount") is not None:
            if round(float(data["amount"]), 2) != round(float(amount), 2):
                log.warning("payment %s amount mismatch: paid=%s due=%s",
                            payment_ref, data["amount"], amount)
                return {"confirmed": False, "error": "amount mismatch"}

        return {"confirmed": True, "error": None}
