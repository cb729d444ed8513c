"""
Settings package: client configuration and formatting.

This package provides:

- :mod:`ExpenseSplitter.settings.lib` – Config paths, settings management and schema validation.
- :mod:`ExpenseSplitter.settings.locale` – Babel-based currency and date formatting.
"""
