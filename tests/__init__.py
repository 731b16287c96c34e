"""
Test suite for crowdfund-ledger

Contains:
- tests/unit/          : Unit tests for individual modules
"""
