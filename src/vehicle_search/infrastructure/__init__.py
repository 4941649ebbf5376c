"""
Infrastructure Layer - adapters to external services.
"""
