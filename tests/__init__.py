"""
Test suite for the reference cache server.
"""
