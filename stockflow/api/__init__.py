# stockflow/api/__init__.py
"""
API package bootstrap：不做重导出，路由聚合见 stockflow/api/router.py
"""

__all__ = []
