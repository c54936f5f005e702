"""Test suite for the Legal Hub workflow engine.

This package contains tests for:
- State machine rules and the status graph
- Approval ledger, document registry and audit log helpers
- Validation, numbering, events and dashboard statistics
- Engine scenarios across forms 1-3 and runtime integration
"""
