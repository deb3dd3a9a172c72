"""Async HTTP client for the portal API"""
