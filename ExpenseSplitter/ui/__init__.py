"""
UI package: application-wide signals consumed by the presentation layer.

This package provides:

- :mod:`ExpenseSplitter.ui.actions` – Application-wide Qt signals for notifications and log display.
"""
