"""
Payment Certificate — interim / final valuation arithmetic and amount in words.

Sequence (each step feeds the next):
    retention      = gross × retention%
    net            = gross − retention − advance recovery
    vat            = net × vat%
    total          = net + vat
    amount due     = total − previous payments   (may go negative, never clamped)

VAT here is charged on the NET valuation. The running valuation table charges
VAT on the gross sub-total; the two figures belong to different documents.
"""
import logging
import re
from dataclasses import asdict, dataclass

from app.services.config import (
    CENT_NAME,
    CURRENCY_NAMES,
    DEFAULT_ADVANCE_RECOVERY,
    DEFAULT_PREVIOUS_PAYMENTS,
    DEFAULT_RETENTION_PCT,
    DEFAULT_VAT_PCT,
)

logger = logging.getLogger("constructai-certificate")

INTERIM_TITLE = "INTERIM PAYMENT CERTIFICATE"
FINAL_TITLE = "FINAL PAYMENT CERTIFICATE"

# Up to 12 integer digits, up to 2 decimals (applied to the 2dp rendering)
_AMOUNT_RE = re.compile(r"^(\d{1,12})(\.(\d{1,2}))?$")

_ONES = [
    "", "One ", "Two ", "Three ", "Four ", "Five ", "Six ", "Seven ", "Eight ", "Nine ", "Ten ",
    "Eleven ", "Twelve ", "Thirteen ", "Fourteen ", "Fifteen ", "Sixteen ", "Seventeen ",
    "Eighteen ", "Nineteen ",
]
_TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]
_SCALES = ["", "Thousand ", "Million ", "Billion "]


@dataclass
class CertificateResult:
    work_executed_cumulative: float
    retention_pct: float
    retention_amount: float
    advance_recovery: float
    net_valuation: float
    vat_pct: float
    vat_amount: float
    total_certified: float
    previous_payments: float
    amount_due: float

    def to_dict(self) -> dict:
        return asdict(self)


def calculate_certificate(
    work_executed_cumulative: float,
    retention_pct: float = DEFAULT_RETENTION_PCT,
    advance_recovery: float = DEFAULT_ADVANCE_RECOVERY,
    vat_pct: float = DEFAULT_VAT_PCT,
    previous_payments: float = DEFAULT_PREVIOUS_PAYMENTS,
) -> CertificateResult:
    retention = work_executed_cumulative * retention_pct / 100
    net = work_executed_cumulative - retention - advance_recovery
    vat = net * vat_pct / 100
    total = net + vat
    due = total - previous_payments
    if due < 0:
        logger.info(f"Certificate is over-certified: amount due {due:.2f}")
    return CertificateResult(
        work_executed_cumulative=work_executed_cumulative,
        retention_pct=retention_pct,
        retention_amount=retention,
        advance_recovery=advance_recovery,
        net_valuation=net,
        vat_pct=vat_pct,
        vat_amount=vat,
        total_certified=total,
        previous_payments=previous_payments,
        amount_due=due,
    )


def certificate_title(is_final_account: bool) -> str:
    return FINAL_TITLE if is_final_account else INTERIM_TITLE


# ── Amount in words ───────────────────────────────────────────────────────────

def _convert_nn(n: int) -> str:
    if n < 20:
        return _ONES[n]
    return _TENS[n // 10] + ("-" + _ONES[n % 10] if n % 10 else " ")


def _convert_nnn(n: int) -> str:
    text = ""
    if n > 99:
        text += _ONES[n // 100] + "Hundred "
        n %= 100
    return text + _convert_nn(n)


def currency_name(currency: str) -> str:
    return CURRENCY_NAMES.get(currency, currency)


def number_to_words(amount: float, currency: str) -> str:
    """
    English words for a non-negative currency amount.

        3075000.00 ETB -> "Three Million Seventy-Five Thousand Birr Only"
        1250.50 USD    -> "One Thousand Two Hundred Fifty Dollars and Fifty Cents"

    Returns "" for anything outside 12 integer digits (negatives included)
    and "Zero" when the whole part is 0.
    """
    match = _AMOUNT_RE.match(f"{amount:.2f}")
    if not match:
        return ""
    whole = int(match.group(1))
    cents = int(match.group(3) or "0")
    if whole == 0:
        return "Zero"

    chunks = []
    digits = str(whole)
    while digits:
        chunks.append(int(digits[-3:]))
        digits = digits[:-3]

    text = ""
    for i, chunk in enumerate(chunks):
        if chunk:
            text = _convert_nnn(chunk) + _SCALES[i] + text

    text = text.strip() + " " + currency_name(currency)
    if cents > 0:
        text += " and " + _convert_nn(cents).strip() + " " + CENT_NAME
    else:
        text += " Only"
    return text


def amount_in_words(amount: float, currency: str) -> str:
    """number_to_words, with negative amounts rendered as 'Minus ...'."""
    if amount < 0 and f"{amount:.2f}" != "-0.00":
        words = number_to_words(-amount, currency)
        return f"Minus {words}" if words else ""
    return number_to_words(abs(amount), currency)


def certification_sentence(amount_due: float, currency: str) -> str:
    return (
        f"Therefore we certify to contractor payable net amount of "
        f"{amount_due:,.2f} {currency} ({amount_in_words(amount_due, currency)})"
    )
