"""
Database connection and per-tenant session management.
"""
