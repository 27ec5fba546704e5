"""Command-line entry point for uploading a file."""
