"""
Core configuration, logging, constants and error types.
"""
