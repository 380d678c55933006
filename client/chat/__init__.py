"""
Chat module for the client-side endpoint.

Handles:
- Connecting and sending the handshake
- Turning user input into protocol messages
- Reading inbound messages until the connection ends
"""
