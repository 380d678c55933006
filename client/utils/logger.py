"""
Client logging module.

This module handles client-side logging functionality.
"""

import logging
import sys


class ClientLogger:
    """Client logging class."""
    
    def __init__(self, log_level: int = logging.WARNING):
        self.logger = logging.getLogger('chat_client')
        self.logger.setLevel(log_level)
        
        # Remove existing handlers
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)
        
        # Chat output goes to stdout, diagnostics to stderr
        self.console_handler = logging.StreamHandler(sys.stderr)
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
    
    def log_connection(self, host: str, port: int, success: bool):
        """Log connection attempt."""
        status = "Connected" if success else "Failed to connect"
        self.info(f"{status} to {host}:{port}")
    
    def log_handshake(self, display_name: str):
        self.info(f"Joining as '{display_name}'")
    
    def log_sent(self, kind: str, size: int):
        """Log an outgoing message."""
        self.debug(f"Sent {kind} ({size} bytes)")
    
    def log_saved(self, kind: str, path):
        """Log an attachment written to disk."""
        self.info(f"Saved {kind} to {path}")
    
    def log_error(self, operation: str, error: Exception):
        """Log error with operation context."""
        self.error(f"Error in {operation}: {error}")


# Global logger instance
logger = ClientLogger()
