"""
Dues Kernel

Shared foundation for the HOA dues payment engine:
- Integer minor-unit Money
- Immutable bills with derived payment status
- Typed exceptions and structured logging
- Credit ledger persistence models
"""

__version__ = "0.1.0"
