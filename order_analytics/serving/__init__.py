"""
Serving Module - read model queries and HTTP API
"""
