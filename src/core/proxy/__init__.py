"""
Proxy Module
============

URL validation and retrieval of remotely hosted diagram sources and images.
"""
