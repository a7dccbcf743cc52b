"""
Core infrastructure: configuration, logging, database and errors.
"""
