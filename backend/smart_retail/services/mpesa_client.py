# Overview: Synchronous client for the Safaricom Daraja STK push API.

"""
M-Pesa Daraja client.

Two calls are used:
- GET  /oauth/v1/generate?grant_type=client_credentials (HTTP Basic)
- POST /mpesa/stkpush/v1/processrequest (Bearer)

No retry or backoff: a transport error, non-2xx status or a non-"0"
ResponseCode raises GatewayError and the initiating request fails.

Tests inject an httpx transport through the MPESA_TRANSPORT config key.
"""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import httpx
from flask import current_app

from ..errors import GatewayConfigError, GatewayError


logger = logging.getLogger(__name__)

# Daraja timestamps are East Africa Time
EAT = timezone(timedelta(hours=3))

REQUIRED_SETTINGS = (
    "MPESA_CONSUMER_KEY",
    "MPESA_CONSUMER_SECRET",
    "MPESA_SHORTCODE",
    "MPESA_PASSKEY",
    "MPESA_CALLBACK_URL",
)


@dataclass(frozen=True)
class StkPushResult:
    merchant_request_id: str
    checkout_request_id: str
    response_code: str
    response_description: str
    customer_message: str


def stk_timestamp(now: datetime | None = None) -> str:
    now = now or datetime.now(EAT)
    return now.strftime("%Y%m%d%H%M%S")


def stk_password(shortcode: str, passkey: str, timestamp: str) -> str:
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode("utf-8")).decode("ascii")


def amount_in_shillings(amount_cents: int) -> int:
    """Daraja accepts whole shillings only; round partial shillings up."""
    return max(1, (amount_cents + 99) // 100)


class MpesaClient:
    def __init__(
        self,
        *,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        shortcode: str,
        passkey: str,
        callback_url: str,
        timeout: float = 15,
        transport: httpx.BaseTransport | None = None,
    ):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = shortcode
        self.passkey = passkey
        self.callback_url = callback_url
        self._http = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, config) -> "MpesaClient":
        missing = [key for key in REQUIRED_SETTINGS if not config.get(key)]
        if missing:
            raise GatewayConfigError(
                "M-Pesa is not configured",
                {"missing": missing},
            )
        return cls(
            base_url=config["MPESA_BASE_URL"],
            consumer_key=config["MPESA_CONSUMER_KEY"],
            consumer_secret=config["MPESA_CONSUMER_SECRET"],
            shortcode=config["MPESA_SHORTCODE"],
            passkey=config["MPESA_PASSKEY"],
            callback_url=config["MPESA_CALLBACK_URL"],
            timeout=config.get("MPESA_TIMEOUT_SECONDS", 15),
            transport=config.get("MPESA_TRANSPORT"),
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "MpesaClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            response = self._http.request(method, url, **kwargs)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("M-Pesa %s %s returned %s", method, url, exc.response.status_code)
            raise GatewayError(
                "Payment gateway rejected the request",
                {"status_code": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("M-Pesa %s %s failed: %s", method, url, exc.__class__.__name__)
            raise GatewayError("Payment gateway unavailable") from exc
        except ValueError as exc:
            raise GatewayError("Payment gateway returned an invalid response") from exc
        if not isinstance(data, dict):
            raise GatewayError("Payment gateway returned an invalid response")
        return data

    def get_access_token(self) -> str:
        data = self._request(
            "GET",
            "/oauth/v1/generate",
            params={"grant_type": "client_credentials"},
            auth=(self.consumer_key, self.consumer_secret),
        )
        token = data.get("access_token")
        if not token:
            raise GatewayError("Payment gateway did not return an access token")
        return token

    def stk_push(
        self,
        *,
        phone: str,
        amount_cents: int,
        account_reference: str,
        description: str,
    ) -> StkPushResult:
        token = self.get_access_token()
        timestamp = stk_timestamp()
        amount = amount_in_shillings(amount_cents)

        payload = {
            "BusinessShortCode": self.shortcode,
            "Password": stk_password(self.shortcode, self.passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": amount,
            "PartyA": phone,
            "PartyB": self.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": self.callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": description,
        }

        data = self._request(
            "POST",
            "/mpesa/stkpush/v1/processrequest",
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
        )

        response_code = str(data.get("ResponseCode", ""))
        if response_code != "0" or not data.get("CheckoutRequestID"):
            raise GatewayError(
                data.get("errorMessage") or data.get("ResponseDescription") or "STK push was not accepted",
                {"response_code": response_code},
            )

        return StkPushResult(
            merchant_request_id=data.get("MerchantRequestID", ""),
            checkout_request_id=data["CheckoutRequestID"],
            response_code=response_code,
            response_description=data.get("ResponseDescription", ""),
            customer_message=data.get("CustomerMessage", ""),
        )


def get_mpesa_client() -> MpesaClient:
    return MpesaClient.from_config(current_app.config)
