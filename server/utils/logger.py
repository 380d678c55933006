"""
Server logging module.

This module handles server-side logging functionality.
"""

import logging


class ServerLogger:
    """Server logging class."""
    
    def __init__(self, log_level: int = logging.INFO):
        # Set up main logger
        self.logger = logging.getLogger('chat_server')
        self.logger.setLevel(log_level)
        
        # Remove existing handlers
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)
        
        # Create console handler
        self.console_handler = logging.StreamHandler()
        self.console_handler.setLevel(log_level)
        
        # Create formatter
        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        self.console_handler.setFormatter(formatter)
        
        # Add handler to logger
        self.logger.addHandler(self.console_handler)
    
    def set_level(self, log_level: int):
        """Change the verbosity of the logger and its console handler."""
        self.logger.setLevel(log_level)
        self.console_handler.setLevel(log_level)
    
    def info(self, message: str):
        """Log info message."""
        self.logger.info(message)
    
    def error(self, message: str):
        """Log error message."""
        self.logger.error(message)
    
    def warning(self, message: str):
        """Log warning message."""
        self.logger.warning(message)
    
    def debug(self, message: str):
        """Log debug message."""
        self.logger.debug(message)
    
    def log_listening(self, address: str):
        self.info(f"Server listening on {address}")
    
    def log_connection(self, addr: tuple, session_id: int):
        """Log client connection."""
        self.info(f"New connection from {addr}, assigned session={session_id}")
    
    def log_handshake(self, display_name: str, session_id: int):
        """Log a completed handshake."""
        self.info(f"User '{display_name}' joined as session={session_id}")
    
    def log_disconnect(self, display_name: str, session_id: int, reason: str):
        """Log session teardown."""
        self.info(f"User {display_name} (session={session_id}) disconnected: {reason}")
    
    def log_relay(self, kind: str, sender: str, session_id: int, size: int, recipients: int):
        """Log a relayed message."""
        self.info(f"{kind} from {sender} (session={session_id}), {size} bytes -> {recipients} recipient(s)")
    
    def log_dropped(self, session_id: int, recipients: list):
        """Log recipients skipped because their queues were full."""
        self.warning(f"Message from session={session_id} dropped for saturated session(s) {recipients}")
    
    def log_rejected(self, session_id: int, error: Exception):
        """Log a frame rejected by the codec or router."""
        self.warning(f"Rejected input from session={session_id}: {error.kind.value}: {error}")
    
    def log_error(self, operation: str, error: Exception):
        """Log error with operation context."""
        self.error(f"Error in {operation}: {error}")


# Global logger instance
logger = ServerLogger()
