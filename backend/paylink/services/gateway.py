"""
Gateway Client — Narrow interface to the hosted payment page provider,
with the PayOS implementation on the official ``payos`` SDK.
"""
import json
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

import requests
from payos import ItemData, PaymentData, PayOS
from payos.custom_error import PayOSError

from paylink.errors import GatewayTimeout, GatewayUnavailable, LinkNotFound
from paylink.log import get_logger

# PayOS "payment link does not exist"
PAYOS_NOT_FOUND_CODE = "101"

T = TypeVar("T")


@dataclass(frozen=True)
class LinkInfo:
    order_code: int
    amount: int
    description: str
    checkout_url: str
    qr_code: str
    payment_link_id: Optional[str] = None
    status: str = "PENDING"
    currency: str = "VND"
    raw: str = ""


@dataclass(frozen=True)
class StatusInfo:
    order_code: int
    status: str
    amount: int
    amount_paid: int = 0
    cancellation_reason: Optional[str] = None
    raw: str = ""
    transactions: list = field(default_factory=list)

    @property
    def settled_amount(self) -> int:
        return self.amount_paid or self.amount


class GatewayClient(ABC):
    """What the engine needs from a payment gateway. Implementations must bound every call with a timeout."""

    name = "gateway"

    @abstractmethod
    def create_link(
        self, order_code: int, amount: int, description: str, cancel_url: str, return_url: str
    ) -> LinkInfo:
        """Create a hosted payment page. Raises GatewayUnavailable on any failure."""

    @abstractmethod
    def query_status(self, order_code: int) -> StatusInfo:
        """Current link status. Raises LinkNotFound, GatewayTimeout or GatewayUnavailable."""

    @abstractmethod
    def cancel_link(self, order_code: int, reason: Optional[str] = None) -> StatusInfo:
        """Cancel a pending link. Raises LinkNotFound or GatewayUnavailable."""


def _plain(obj):
    """SDK result objects as JSON-ready dicts."""
    to_json = getattr(obj, "to_json", None)
    return to_json() if callable(to_json) else vars(obj)


class PayOSGateway(GatewayClient):
    """PayOS merchant API through the ``payos`` SDK.

    The SDK blocks without a deadline, so every call runs on a small worker
    pool and the caller waits at most ``timeout`` seconds for it.
    """

    name = "payos"

    def __init__(
        self,
        client_id: str,
        api_key: str,
        checksum_key: str,
        partner_code: str = "",
        timeout: float = 10.0,
        sdk: Optional[PayOS] = None,
        max_workers: int = 8,
    ):
        if sdk is None:
            credentials = {"client_id": client_id, "api_key": api_key, "checksum_key": checksum_key}
            if partner_code:
                credentials["partner_code"] = partner_code
            sdk = PayOS(**credentials)
        self._sdk = sdk
        self._timeout = timeout
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="payos")
        self._log = get_logger("payos_gateway")

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)

    def create_link(self, order_code, amount, description, cancel_url, return_url) -> LinkInfo:
        payment = PaymentData(
            orderCode=order_code,
            amount=amount,
            description=description,
            items=[ItemData(name=description or str(order_code), quantity=1, price=amount)],
            cancelUrl=cancel_url,
            returnUrl=return_url,
        )

        def create() -> LinkInfo:
            result = self._sdk.createPaymentLink(payment)
            return LinkInfo(
                order_code=int(result.orderCode),
                amount=int(result.amount),
                description=result.description or description,
                checkout_url=result.checkoutUrl or "",
                qr_code=result.qrCode or "",
                payment_link_id=result.paymentLinkId,
                status=result.status or "PENDING",
                currency=getattr(result, "currency", None) or "VND",
                raw=json.dumps(_plain(result), default=_plain, ensure_ascii=False),
            )

        try:
            return self._call("create_link", order_code, create)
        except LinkNotFound as exc:
            raise GatewayUnavailable("Gateway rejected the payment request", order_code=order_code) from exc
        except GatewayTimeout as exc:
            # A timed-out creation is a failed creation
            raise GatewayUnavailable(str(exc), order_code=order_code) from exc

    def query_status(self, order_code: int) -> StatusInfo:
        return self._call(
            "query_status",
            order_code,
            lambda: self._status_info(order_code, self._sdk.getPaymentLinkInformation(order_code)),
        )

    def cancel_link(self, order_code: int, reason: Optional[str] = None) -> StatusInfo:
        return self._call(
            "cancel_link",
            order_code,
            lambda: self._status_info(order_code, self._sdk.cancelPaymentLink(order_code, reason)),
        )

    @staticmethod
    def _status_info(order_code: int, info) -> StatusInfo:
        return StatusInfo(
            order_code=int(getattr(info, "orderCode", None) or order_code),
            status=str(getattr(info, "status", None) or ""),
            amount=int(getattr(info, "amount", None) or 0),
            amount_paid=int(getattr(info, "amountPaid", None) or 0),
            cancellation_reason=getattr(info, "cancellationReason", None),
            transactions=[_plain(t) for t in getattr(info, "transactions", None) or []],
            raw=json.dumps(_plain(info), default=_plain, ensure_ascii=False),
        )

    def _call(self, operation: str, order_code: int, fn: Callable[[], T]) -> T:
        """Run one SDK call under the deadline and map its failures."""
        log = self._log.bind(operation=operation, order_code=order_code)
        future = self._pool.submit(fn)
        try:
            return future.result(timeout=self._timeout)
        except FutureTimeout as exc:
            future.cancel()
            log.warning("gateway_timeout", timeout=self._timeout)
            raise GatewayTimeout() from exc
        except PayOSError as exc:
            code = str(getattr(exc, "code", ""))
            if code == PAYOS_NOT_FOUND_CODE:
                raise LinkNotFound(str(exc) or None) from exc
            log.warning("gateway_rejected", code=code, desc=str(exc))
            raise GatewayUnavailable(str(exc) or "Gateway rejected the request") from exc
        except requests.Timeout as exc:
            log.warning("gateway_timeout", timeout=self._timeout)
            raise GatewayTimeout() from exc
        except requests.RequestException as exc:
            log.warning("gateway_unreachable", error=repr(exc))
            raise GatewayUnavailable() from exc
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            log.warning("gateway_bad_response", error=repr(exc))
            raise GatewayUnavailable("Bad response from gateway") from exc
