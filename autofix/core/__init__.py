"""
Core lifecycle: configuration, data model, stores, orchestration, signing.
"""
