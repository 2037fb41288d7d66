"""
Service modules of the chat client.
"""
