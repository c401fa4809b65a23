"""
FastAPI application.
"""
