"""voucher-rescue — Recover monthly voucher totals from messy accounting exports."""

__version__ = "0.1.0"

MONTHS_PER_YEAR = 12
