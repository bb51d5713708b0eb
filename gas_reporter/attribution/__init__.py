"""Attribution engine.

Implements:
  - Bytecode matching tolerant of link and immutable placeholders
  - The gas ledger (method and deployment records, address and code-hash indexes)
  - The resolver chain for proxied and factory-deployed targets
  - The collector that classifies transactions and calls
  - The statistical reduction run after collection
"""
