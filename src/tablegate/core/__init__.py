"""
Core - the engine components and the value marshalling they share.
"""
