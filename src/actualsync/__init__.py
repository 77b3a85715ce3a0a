"""actualsync: scheduled bank synchronization for Actual Budget servers.

This package drives the Actual Budget bank-sync workflow across any number of
configured servers:
- Bounded exponential-backoff retry for every remote call
- Per-account failure isolation inside one server's sync
- Sequential, single-flight orchestration across servers
- DuckDB-backed sync history, webhook notifications and a health API
"""

__version__ = "0.1.0"
