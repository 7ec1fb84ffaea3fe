import secrets
import string
import time

from sqlalchemy.orm import Session

from app.models.booking import Booking
from app.services.errors import BookingError

_BASE36 = string.digits + string.ascii_uppercase


def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
    return out or "0"


def _now_ms() -> int:
    return int(time.time() * 1000)


def make_booking_ref() -> str:
    """SF + base36 millisecond timestamp + 4 random base36 chars, e.g. SFM3K9ZQ1A7XC."""
    rand = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"SF{_base36(_now_ms())}{rand}"


def allocate_booking_ref(db: Session) -> str:
    # booking_reference must be unique
    for _ in range(10):
        ref = make_booking_ref()
        exists = db.query(Booking.id).filter(Booking.booking_reference == ref).first()
        if not exists:
            return ref
    raise BookingError("could not allocate booking reference")


def make_pesapal_merchant_ref(booking_ref: str) -> str:
    return f"SP-{booking_ref}-{_now_ms()}-{secrets.token_hex(2)}"


def make_flutterwave_tx_ref(booking_ref: str) -> str:
    return f"FLW-{booking_ref}-{_now_ms()}-{secrets.token_hex(4)}"
