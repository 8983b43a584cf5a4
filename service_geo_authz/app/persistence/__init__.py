"""
Persistence for areas and rules (in-memory and PostgreSQL).
"""
