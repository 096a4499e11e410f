"""
Commission split calculator.

Ogni importo base viene ripartito in tre quote calcolate indipendentemente
sull'importo base: quota FIACOM (80%), quota del responsabile territoriale
e quota dello sportello lavoro (percentuali concordate).
"""
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, List, Optional
import math

from conto.exceptions import ValidationError
from conto.models import ContoTransaction, Party

FIACOM_NET_RATIO = Decimal("0.8")

_CENT = Decimal("0.01")


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    # str() keeps the shortest repr, so 0.285 stays 0.285 and not 0.28499999...
    return Decimal(str(number))


def round2(value: Any) -> float:
    """Arrotonda ai centesimi, metà per eccesso (1.005 -> 1.01)."""
    number = value if isinstance(value, Decimal) else _to_decimal(value)
    if number is None:
        return 0.0
    return float(number.quantize(_CENT, rounding=ROUND_HALF_UP))


def normalize_percent(value: Any, fallback: float = 0) -> float:
    """Percentuale in [0, 100]; valori mancanti o non numerici danno fallback."""
    number = _to_decimal(value)
    if number is None:
        return float(fallback)
    if number < 0:
        return 0.0
    if number > 100:
        return 100.0
    return float(number)


@dataclass(frozen=True)
class CommissionSplit:
    """Result of one split: every share is computed on base."""
    base: float
    house: float
    manager: float
    center: float
    manager_percent: float
    center_percent: float

    def as_breakdown(self) -> Dict[str, float]:
        return {
            "base_amount": self.base,
            "fiacom_amount": self.house,
            "responsabile_amount": self.manager,
            "sportello_amount": self.center,
            "responsabile_percent": self.manager_percent,
            "sportello_percent": self.center_percent,
        }

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def compute_split(base_amount: Any, manager_percent: Any = None, center_percent: Any = None) -> CommissionSplit:
    """
    Compute house/manager/center shares of a base amount.

    Args:
        base_amount: Importo base B, must be > 0
        manager_percent: Percentuale responsabile (clamped to [0, 100], default 0)
        center_percent: Percentuale sportello (same rule)

    Returns:
        CommissionSplit

    Raises:
        ValidationError: If base_amount is missing, not finite or not positive
    """
    base = _to_decimal(base_amount)
    if base is None or base <= 0:
        raise ValidationError(
            "L'importo base deve essere maggiore di zero",
            details={"base_amount": base_amount}
        )

    pm = normalize_percent(manager_percent)
    ps = normalize_percent(center_percent)

    try:
        house = round2(base * FIACOM_NET_RATIO)
        manager = round2(base * Decimal(str(pm)) / 100)
        center = round2(base * Decimal(str(ps)) / 100)
    except InvalidOperation as e:
        raise ValidationError(f"Importo base non valido: {base_amount}") from e

    return CommissionSplit(
        base=float(base),
        house=house,
        manager=manager,
        center=center,
        manager_percent=pm,
        center_percent=ps,
    )


def build_ledger_rows(
    split: CommissionSplit,
    common: Dict[str, Any],
    house_user_id: str,
    responsabile_id: str,
    sportello_owner_id: str,
    sportello_id: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    Build the three ledger documents of one economic event.

    All three share raw_amount and import_key (carried by ``common``) and
    differ only in amount, owning user and party.
    """
    shares = (
        (Party.FIACOM, split.house, house_user_id),
        (Party.RESPONSABILE, split.manager, responsabile_id),
        (Party.SPORTELLO, split.center, sportello_owner_id),
    )
    rows = []
    for party, amount, owner in shares:
        entry = ContoTransaction(
            **common,
            amount=amount,
            raw_amount=split.base,
            user_id=owner,
            party=party,
            responsabile_id=responsabile_id,
            sportello_id=sportello_id,
        )
        rows.append(entry.model_dump())
    return rows
