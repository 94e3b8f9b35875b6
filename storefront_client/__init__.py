"""Python client for the storefront REST API"""
from .http_client import HttpClient, ApiResponse, ApiError
from .api import StorefrontApi

__all__ = ['HttpClient', 'ApiResponse', 'ApiError', 'StorefrontApi']
