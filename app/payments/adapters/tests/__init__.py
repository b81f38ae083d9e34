"""Tests for the payment gateway, catalog and transfer adapters."""
