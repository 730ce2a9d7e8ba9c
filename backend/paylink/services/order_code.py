"""
Order Code Service — Time-sortable 64-bit order codes for gateway links.
"""
import threading
import time

# Largest order code PayOS accepts (2^53 - 1)
MAX_ORDER_CODE = 9007199254740991

# Low three digits are a per-millisecond sequence
SEQUENCE_SPAN = 1000


class OrderCodeGenerator:
    """Generates unique, monotonically increasing order codes.

    Code = epoch milliseconds * 1000 + sequence. When several requests land
    in the same millisecond the sequence disambiguates them; if it runs past
    999 the code simply borrows from the next millisecond, so codes stay
    strictly increasing within the process.
    """

    def __init__(self, clock=None):
        self._clock = clock or time.time
        self._lock = threading.Lock()
        self._last = 0

    def next(self) -> int:
        with self._lock:
            candidate = int(self._clock() * 1000) * SEQUENCE_SPAN
            code = max(candidate, self._last + 1)
            self._last = code
        return code % MAX_ORDER_CODE

    @staticmethod
    def timestamp_ms(order_code: int) -> int:
        """Creation time (epoch ms) encoded in an order code."""
        return order_code // SEQUENCE_SPAN
