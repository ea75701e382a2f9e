"""
Allocation Kernel

A bounded monetary allocation engine with:
- Integer minor-unit money, one currency per operation
- Compare-and-set balance updates on sources and targets
- All-or-nothing batch allocation
- Full and partial reversal with a retained audit trail
- Idempotent request handling
- Per-currency and converted reporting
"""

__version__ = "0.1.0"
