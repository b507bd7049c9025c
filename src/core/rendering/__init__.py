"""
Rendering Module
===============

Adapters around the PlantUML renderer.

Components:
- renderer: Block splitting and jar invocation
- resources: Emoji, icon and theme listings bundled in the jar
- metadata: Diagram source extraction from rendered PNG and SVG images
"""
