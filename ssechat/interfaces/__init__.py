"""
Server interfaces for SSE Chat
"""
