"""
API Routes
==========

Routers for the diagram, proxy, coder, metadata, listing and health endpoints.
"""
