"""
Codec Module
============

URL token encoding of diagram sources.
"""
