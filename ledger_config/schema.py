"""
LedgerConfig schema.

The typed, frozen runtime configuration for the ledger.  YAML files are
parsed into these types by the loader; nothing else in the system reads
configuration files or environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

DEFAULT_CHANNEL_NAMES: dict[str, str] = {
    "DINE_IN": "Dine In",
    "TAKEAWAY": "Take Away",
    "CATERING": "Catering",
    "DELIVERY": "Delivery",
}

DEFAULT_VARIANT_KEYWORDS: tuple[str, ...] = (
    "merah",
    "hijau",
    "kuning",
    "putih",
    "tanjung",
    "kriting",
    "keriting",
    "besar",
    "kecil",
    "sedang",
)


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection settings."""

    url: str = "sqlite:///ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class SequenceConfig:
    """Code formats for the ledger and reimbursement batches."""

    transaction_code_prefix: str = "PCS"
    transaction_code_width: int = 6
    batch_code_prefix: str = "RMB"
    batch_code_width: int = 3


@dataclass(frozen=True)
class IntakeConfig:
    """Free-text expense intake settings."""

    future_date_window_days: int = 30
    default_expense_account_id: UUID | None = None
    variant_keywords: tuple[str, ...] = DEFAULT_VARIANT_KEYWORDS
    variant_weight: int = 5


@dataclass(frozen=True)
class LedgerConfig:
    """Complete runtime configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    sequences: SequenceConfig = field(default_factory=SequenceConfig)
    intake: IntakeConfig = field(default_factory=IntakeConfig)
    channel_names: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_CHANNEL_NAMES)
    )
    log_level: str = "INFO"

    # Flat accessors used by kernel services (which never import this package)

    @property
    def transaction_code_prefix(self) -> str:
        return self.sequences.transaction_code_prefix

    @property
    def transaction_code_width(self) -> int:
        return self.sequences.transaction_code_width

    @property
    def batch_code_prefix(self) -> str:
        return self.sequences.batch_code_prefix

    @property
    def batch_code_width(self) -> int:
        return self.sequences.batch_code_width

    def channel_name(self, order_type: str) -> str:
        """Display name for a POS order type; unknown types pass through unchanged."""
        return self.channel_names.get(order_type, order_type)
