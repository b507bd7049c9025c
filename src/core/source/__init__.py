"""
Source Module
=============

Locating diagram sources in requests and building compiled documents.

Components:
- locator: Path token, query parameter, upload and body extraction
- builder: Implicit wrapping and preamble fallback
"""
