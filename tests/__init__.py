"""Test suite for ExpenseSplitter."""
