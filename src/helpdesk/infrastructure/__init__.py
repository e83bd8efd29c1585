"""
Infrastructure Layer
=====================

Technical concerns shared by the bounded contexts:
- Database connection management
- Configuration document loading and hot reload
"""
