"""
Utilities - hashing and table policies.
"""
