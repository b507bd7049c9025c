"""
PlantUML Gateway
================

An HTTP service exposing the PlantUML renderer over the web.

This package provides:
- FastAPI endpoints for rendering compressed diagram sources from URLs
- Source location, diagram selection and HTTP cache negotiation
- Proxying of remote diagram sources
- Metadata extraction from previously rendered images
"""

__version__ = "1.0.0"
__author__ = "PlantUML Gateway Team"
