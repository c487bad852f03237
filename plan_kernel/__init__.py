"""
Plan Kernel

Shared foundation for the participant plan ledger:
- Plans, budget lines, funding periods, providers, service agreements
- Hash-chained, append-only audit log
- Typed exceptions and structured JSON logging
- Row-locked, version-checked capacity for fund reservations
"""

__version__ = "0.1.0"
