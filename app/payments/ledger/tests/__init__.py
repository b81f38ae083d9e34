"""Tests for the billing ledger."""
