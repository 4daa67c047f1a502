"""
FastAPI RESTful API for the Reading List service.

This module provides a REST API for:
- Account registration and token-based login
- Managing a personal reading list with ratings and notes
- Searching the external book catalog
"""
