"""QR code generation for the ADA receiving address."""

import base64
import io
from decimal import Decimal

import qrcode  # type: ignore[import-untyped]


def payment_uri(address: str, amount_ada: Decimal | None = None) -> str:
    """CIP-13 payment URI (``web+cardano:<addr>?amount=<ada>``)."""
    if amount_ada is None or amount_ada <= 0:
        return f"web+cardano:{address}"
    return f"web+cardano:{address}?amount={amount_ada.normalize():f}"


def generate_payment_qr(address: str, amount_ada: Decimal | None = None) -> str:
    """Generate a QR code as a ``data:image/png;base64,...`` string.

    Wallets that understand CIP-13 pre-fill the amount; others read the
    address only.
    """
    qr = qrcode.QRCode(version=1, box_size=8, border=2)
    qr.add_data(payment_uri(address, amount_ada))
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")

    b64 = base64.b64encode(buf.getvalue()).decode()
    return f"data:image/png;base64,{b64}"
