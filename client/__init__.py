"""
Client package for the chat relay service.

This package contains all client-side functionality including:
- The chat endpoint (connect, send, receive)
- Attachment storage
- The interactive terminal client
- Configuration and utilities
"""
