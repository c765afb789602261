"""
Domain Services Package

Architectural Intent:
- Stateless domain logic over steps and plans
"""

from keystone.domain.services.dependency_graph import build_plan, filter_steps

__all__ = ["build_plan", "filter_steps"]
