"""Runtime settings, read from ORDER_SAGA_* environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

DEFAULT_SHIPPING_CHARGE = Decimal("40.00")


@dataclass(slots=True)
class Settings:
    shipping_charge: Decimal = DEFAULT_SHIPPING_CHARGE
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        raw = os.environ.get("ORDER_SAGA_SHIPPING_CHARGE")
        shipping_charge = DEFAULT_SHIPPING_CHARGE
        if raw:
            try:
                shipping_charge = Decimal(raw).quantize(Decimal("0.01"))
            except InvalidOperation as exc:
                raise ValueError(f"ORDER_SAGA_SHIPPING_CHARGE is not a number: {raw!r}") from exc
            if shipping_charge < 0:
                raise ValueError("ORDER_SAGA_SHIPPING_CHARGE cannot be negative")
        return cls(
            shipping_charge=shipping_charge,
            log_level=os.environ.get("ORDER_SAGA_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO", fmt: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s") -> None:
    logging.basicConfig(level=level, format=fmt)
