"""
Server package for the chat relay service.

This package contains all server-side functionality including:
- Connection acceptance and message routing
- Per-connection client sessions
- The shared session registry
- Configuration and utilities
"""
