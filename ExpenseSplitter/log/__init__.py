"""
Logging subsystem for ExpenseSplitter.

Modules:

- :mod:`ExpenseSplitter.log.log` – Root logger setup, credential masking, in-memory log tank and the Qt message bridge.
"""
