"""Connectors to Actual Budget servers.

The sync workflow only talks to the ``BudgetClient`` protocol; the
``ActualBudgetClient`` adapter implements it on top of the actualpy SDK.
"""

from .base import Account, BudgetClient

__all__ = ["Account", "BudgetClient"]
