"""
Relay test suite.
"""
