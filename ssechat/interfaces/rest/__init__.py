"""
REST interface serving the streaming chat relay
"""

from .api import RestInterface, create_app

__all__ = ['RestInterface', 'create_app']
