"""
Database layer - connections, dialects and the unit-of-work session.
"""
