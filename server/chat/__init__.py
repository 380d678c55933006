"""
Chat module for server-side session handling.

Handles:
- Per-connection inbound and outbound loops
- Handshake validation
- The registry of active sessions and broadcast fan-out
"""
