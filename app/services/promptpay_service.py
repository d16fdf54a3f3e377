"""PromptPay QR generation for VIP transfers.

The EMVCo merchant-presented payload comes from the ``promptpay`` package;
segno renders it as a PNG data URI.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal

import segno
import structlog
from promptpay import qrcode as promptpay_qrcode

from app.config import settings


logger = structlog.get_logger(__name__)

_PHONE_RE = re.compile(r'^0\d{9}$')
_TAX_ID_RE = re.compile(r'^\d{13}$')


class PromptPayError(Exception):
    pass


class PromptPayConfigurationError(PromptPayError):
    pass


@dataclass(frozen=True)
class PromptPayQR:
    qr_code: str
    payload: str
    reference: str
    amount: int | float | Decimal


def _merchant_id() -> str:
    return (settings.PROMPTPAY_MERCHANT_ID or '').strip()


def _is_valid_merchant_id(value: str) -> bool:
    return bool(_PHONE_RE.match(value) or _TAX_ID_RE.match(value))


def is_promptpay_configured() -> bool:
    return _is_valid_merchant_id(_merchant_id())


def build_promptpay_payload(merchant_id: str, amount: int | float | Decimal | None = None) -> str:
    return promptpay_qrcode.generate_payload(merchant_id, float(amount) if amount else None)


def _render_qr(payload: str) -> str:
    return segno.make_qr(payload, error='m').png_data_uri(scale=10, border=2)


async def generate_promptpay_qr(amount: int | float | Decimal, reference: str) -> PromptPayQR:
    merchant_id = _merchant_id()
    if not merchant_id:
        raise PromptPayConfigurationError('PromptPay merchant ID not configured')
    if not _is_valid_merchant_id(merchant_id):
        raise PromptPayConfigurationError('Invalid PromptPay merchant ID format')
    if amount is None or amount <= 0:
        raise PromptPayError('Amount must be greater than 0')

    try:
        payload = build_promptpay_payload(merchant_id, amount)
        qr_code = _render_qr(payload)
    except Exception as exc:
        logger.error('PromptPay QR generation failed', reference=reference, exc_info=exc)
        raise PromptPayError(f'Failed to generate PromptPay QR: {exc!s}') from exc

    logger.info('PromptPay QR generated', reference=reference, amount=str(amount))
    return PromptPayQR(qr_code=qr_code, payload=payload, reference=reference, amount=amount)
