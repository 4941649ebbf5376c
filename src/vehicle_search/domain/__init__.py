"""
Domain Layer - Core Business Objects

Contains:
- entities: vehicles, conversations, queries, search results, safety records
"""
