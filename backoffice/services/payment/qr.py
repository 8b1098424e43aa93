"""QR payload for bank-transfer payments."""

from urllib.parse import urlencode

from backoffice.core.config import Settings


def payment_reference(table_id: int) -> str:
    """Transfer description the bank shows; identifies the table."""
    return f"Payment table {table_id}"


def build_qr_payload(settings: Settings, amount: float, table_id: int) -> str:
    """
    Build the QR image URL for a transfer.

    The same amount and table always give the same payload.
    """
    query = urlencode(
        {
            "acc": settings.qr_bank_account,
            "bank": settings.qr_bank_name,
            "amount": int(round(amount)),
            "des": payment_reference(table_id),
        }
    )
    return f"{settings.qr_image_base_url}?{query}"
