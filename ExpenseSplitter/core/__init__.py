"""
Core package for ExpenseSplitter.

This package includes:

- :mod:`ExpenseSplitter.core.models` – Dataclasses for users, groups, expenses, settlements and summaries.
- :mod:`ExpenseSplitter.core.session` – Persisted credential and the auth change channel.
- :mod:`ExpenseSplitter.core.api` – Asynchronous HTTP gateway with a single error taxonomy.
- :mod:`ExpenseSplitter.core.guard` – Route guard state machine for protected and public-only views.
- :mod:`ExpenseSplitter.core.auth` – Login, logout and the navigation bar's signed-in user.
- :mod:`ExpenseSplitter.core.groups` – Dashboard controller listing and creating groups.
- :mod:`ExpenseSplitter.core.ledger` – Group ledger controller: atomic fetch, mutations, expense form and report export.
"""
