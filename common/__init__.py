"""
Shared package for the chat relay service.

This package contains everything both sides of a connection agree on:
- Message kinds and payload types
- Binary frame codec
- Error taxonomy
- Constants
"""
