"""
NicePay billing web API client.

Implements the signed form-post protocol: every request carries ``SignData``,
a SHA-256 hex digest over a fixed concatenation of request fields and the
merchant key, and card data is sent AES-128-ECB encrypted with the first 16
bytes of the merchant key.
"""
from __future__ import annotations

import hashlib
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo

import httpx
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from src.core.config import NicePaySettings
from src.core.exceptions import GatewayError


logger = logging.getLogger(__name__)

KST = ZoneInfo("Asia/Seoul")

REGISTER_PATH = "/webapi/billing/billing_regist.jsp"
APPROVE_PATH = "/webapi/billing/billing_approve.jsp"
REMOVE_PATH = "/webapi/billing/billkey_remove.jsp"
CANCEL_PATH = "/webapi/cancel_process.jsp"

REGISTER_OK = "F100"
APPROVE_OK = "3001"
REMOVE_OK = "F101"
CANCEL_OK = frozenset({"2001", "2211"})

# TID layout: MID + pay method (01 card) + media (16 billing) + yyMMddHHmmss + 4 digits
TID_PAY_METHOD = "01"
TID_MEDIA = "16"


def generate_moid(prefix: str) -> str:
    """Return a merchant order id unique per millisecond."""

    return f"{prefix}_{int(time.time() * 1000)}"


def sign(*parts: Any) -> str:
    return hashlib.sha256("".join(str(p) for p in parts).encode("utf-8")).hexdigest()


@dataclass
class GatewayResult:
    result_code: str
    result_msg: str
    raw: Dict[str, Any]


@dataclass
class BillingKeyResult(GatewayResult):
    bid: str
    card_code: str
    card_name: str
    card_no: str
    auth_date: str


@dataclass
class ApprovalResult(GatewayResult):
    tid: str
    amount: int
    auth_code: str
    auth_date: str


class NicePayClient:
    """
    Thin async client for billing-key registration, recurring approval,
    key removal and approval cancellation.

    The HTTP client is owned by the caller (the application lifespan), so a
    single connection pool is shared across requests and closed on shutdown.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        mid: str,
        merchant_key: str,
        base_url: str = "https://webapi.nicepay.co.kr",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not mid or not merchant_key:
            raise ValueError("NicePay MID and merchant key are required")
        self.http = http_client
        self.mid = mid
        self.merchant_key = merchant_key
        self.base_url = base_url.rstrip("/")
        self._clock = clock or (lambda: datetime.now(KST))

    @classmethod
    def from_settings(
        cls, config: NicePaySettings, http_client: httpx.AsyncClient
    ) -> "NicePayClient":
        return cls(
            http_client,
            mid=config.mid,
            merchant_key=config.merchant_key,
            base_url=config.api_base_url,
        )

    def edi_date(self) -> str:
        return self._clock().strftime("%Y%m%d%H%M%S")

    def make_tid(self) -> str:
        stamp = self._clock().strftime("%y%m%d%H%M%S")
        return f"{self.mid}{TID_PAY_METHOD}{TID_MEDIA}{stamp}{secrets.randbelow(10000):04d}"

    def encrypt_card_data(
        self,
        card_no: str,
        exp_year: str,
        exp_month: str,
        id_no: str,
        card_pw: str,
    ) -> str:
        """Encrypt raw card fields into the hex ``EncData`` value."""

        plain = (
            f"CardNo={card_no}&ExpYear={exp_year}&ExpMonth={exp_month}"
            f"&IDNo={id_no}&CardPw={card_pw}"
        ).encode("utf-8")
        key = self.merchant_key.encode("utf-8")[:16]

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plain) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.ECB()).encryptor()
        return (encryptor.update(padded) + encryptor.finalize()).hex()

    async def _post(self, path: str, form: Dict[str, Any], action: str) -> Dict[str, Any]:
        payload = {k: str(v) for k, v in form.items()}
        payload.setdefault("CharSet", "utf-8")
        payload.setdefault("EdiType", "JSON")
        try:
            response = await self.http.post(f"{self.base_url}{path}", data=payload)
        except httpx.HTTPError as exc:
            logger.error(f"NicePay {action} request failed: {exc}")
            raise GatewayError(f"Payment gateway unreachable during {action}") from exc

        if response.status_code >= 400:
            logger.error(f"NicePay {action} returned HTTP {response.status_code}")
            raise GatewayError(
                f"Payment gateway returned HTTP {response.status_code} during {action}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise GatewayError(f"Unreadable payment gateway response during {action}") from exc

        logger.info(
            f"NicePay {action} result: {body.get('ResultCode')} {body.get('ResultMsg')}"
        )
        return body

    @staticmethod
    def _check(body: Dict[str, Any], expected: frozenset[str] | str, fallback: str) -> None:
        codes = {expected} if isinstance(expected, str) else expected
        code = str(body.get("ResultCode", ""))
        if code not in codes:
            raise GatewayError(body.get("ResultMsg") or fallback, result_code=code or None)

    async def register_billing_key(self, enc_data: str, order_id: str) -> BillingKeyResult:
        edi_date = self.edi_date()
        body = await self._post(
            REGISTER_PATH,
            {
                "MID": self.mid,
                "EdiDate": edi_date,
                "Moid": order_id,
                "EncData": enc_data,
                "SignData": sign(self.mid, edi_date, order_id, self.merchant_key),
            },
            "billing key registration",
        )
        self._check(body, REGISTER_OK, "Billing key registration failed")
        return BillingKeyResult(
            result_code=body["ResultCode"],
            result_msg=body.get("ResultMsg", ""),
            raw=body,
            bid=body.get("BID", ""),
            card_code=body.get("CardCode", ""),
            card_name=body.get("CardName", ""),
            card_no=body.get("CardNo", ""),
            auth_date=body.get("AuthDate", ""),
        )

    async def approve_billing(
        self, bid: str, order_id: str, amount: int, goods_name: str
    ) -> ApprovalResult:
        edi_date = self.edi_date()
        body = await self._post(
            APPROVE_PATH,
            {
                "BID": bid,
                "MID": self.mid,
                "TID": self.make_tid(),
                "EdiDate": edi_date,
                "Moid": order_id,
                "Amt": amount,
                "GoodsName": goods_name,
                "CardInterest": "0",
                "CardQuota": "00",
                "SignData": sign(self.mid, edi_date, order_id, amount, bid, self.merchant_key),
            },
            "billing approval",
        )
        self._check(body, APPROVE_OK, "Billing approval failed")
        return ApprovalResult(
            result_code=body["ResultCode"],
            result_msg=body.get("ResultMsg", ""),
            raw=body,
            tid=body.get("TID", ""),
            amount=int(body.get("Amt") or amount),
            auth_code=body.get("AuthCode", ""),
            auth_date=body.get("AuthDate", ""),
        )

    async def remove_billing_key(self, bid: str, order_id: str) -> GatewayResult:
        edi_date = self.edi_date()
        body = await self._post(
            REMOVE_PATH,
            {
                "BID": bid,
                "MID": self.mid,
                "EdiDate": edi_date,
                "Moid": order_id,
                "SignData": sign(self.mid, edi_date, order_id, bid, self.merchant_key),
            },
            "billing key removal",
        )
        self._check(body, REMOVE_OK, "Billing key removal failed")
        return GatewayResult(body["ResultCode"], body.get("ResultMsg", ""), body)

    async def cancel_approval(
        self, tid: str, order_id: str, amount: int, reason: str
    ) -> GatewayResult:
        """Cancel a whole approved charge."""

        edi_date = self.edi_date()
        body = await self._post(
            CANCEL_PATH,
            {
                "TID": tid,
                "MID": self.mid,
                "Moid": order_id,
                "CancelAmt": amount,
                "CancelMsg": reason,
                "PartialCancelCode": "0",
                "EdiDate": edi_date,
                "SignData": sign(self.mid, amount, edi_date, self.merchant_key),
            },
            "approval cancel",
        )
        self._check(body, CANCEL_OK, "Approval cancel failed")
        return GatewayResult(body["ResultCode"], body.get("ResultMsg", ""), body)
