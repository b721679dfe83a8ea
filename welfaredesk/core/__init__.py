"""
Core infrastructure: configuration, logging, errors and authorization.
"""
