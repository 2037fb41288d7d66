"""
Shared utilities: structured logging and the REST client.
"""
