"""
Repo autofix - security-fix generation and pull request lifecycle service.
"""
