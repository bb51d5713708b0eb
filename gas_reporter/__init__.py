"""Gas attribution and aggregation engine for EVM test runs.

Observes the transactions and simulated calls a test suite sends through
an instrumented JSON-RPC provider, attributes their gas to contract
methods and deployments, and reduces the samples to reportable figures.
"""

__version__ = "0.1.0"
