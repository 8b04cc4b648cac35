"""
External integrations for the learnstate engine.

Modules:
- problem_repository_client: HTTP problem repository
"""
from .problem_repository_client import HttpProblemRepository

__all__ = ["HttpProblemRepository"]
