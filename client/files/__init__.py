"""
Files module for client-side attachment handling.

Handles:
- Saving received files and images to the download directory
"""
