"""Business logic"""
