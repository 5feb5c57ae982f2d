"""
zkrecovery Core Module

Core functionality for guardian recovery including:
- Field hashing and recovery circuit evaluation
- Proof verification backends
- Shared ledger state and atomic commits
- Configuration, logging and the exception hierarchy
"""

__all__ = []
