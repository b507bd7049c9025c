"""
Output Module
=============

Choosing what to send back for a compiled document.

Components:
- selector: Global image index resolution
- negotiator: Etag / Last-Modified validation and cache headers
- formats: Output format detection
"""
