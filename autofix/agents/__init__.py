"""
Repository context and generative fix providers.
"""
