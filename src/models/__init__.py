"""
Data Models
===========

Pydantic data models for request/response validation and internal data structures.

Models:
- schemas: Diagram sources, compiled documents, selections and API payloads
"""
