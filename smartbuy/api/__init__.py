"""FastAPI application module for SmartBuy Suggest.

This module contains the FastAPI application, route handlers, and API
endpoints for recording shopping interactions and serving ranked
suggestions.
"""
