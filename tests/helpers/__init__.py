"""Test helper modules for the devloop test suite.

- cache_utils: reset module-level caches and process-wide registries
- sockets: bind real listeners to occupy or free TCP ports
"""
