"""
Route Crawler Test Suite

Structure:
- unit/: Fast, isolated tests. Network access is replaced by an
  in-memory fetcher (see conftest.py).
"""
