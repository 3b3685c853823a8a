"""
cli - Command line interface for bridge_sync.
"""
