"""
Core Business Logic
==================

Core modules of the diagram request pipeline.

Modules:
- source: Source location and document building
- output: Image selection, cache negotiation and format detection
- codec: URL token encoding
- rendering: PlantUML jar adapter, bundled resources and image metadata
- proxy: Remote source validation and fetching
- context: Startup configuration shared by all requests
"""
