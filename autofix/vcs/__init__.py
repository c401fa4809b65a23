"""
Hosting API client and pull request publisher.
"""
