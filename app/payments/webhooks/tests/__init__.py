"""Tests for gateway webhook intake and processing."""
