"""
Catalog package for book search against the external bibliographic catalog.

This package contains:
- HTTP client for the catalog search and work-detail endpoints
- Tolerant models for raw catalog payloads
- English-preference heuristics for titles and authors
- The search aggregator that merges, deduplicates and enriches results
"""

__version__ = "1.0.0"
