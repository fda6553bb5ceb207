"""
Test suite for the energy market

Contains:
- tests/unit/          : Unit tests for individual modules and the market service
"""
