from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class _Base(BaseModel):
    """
    出参基类：
    - from_attributes: 支持 SQLAlchemy ORM 自动序列化；
    - extra = ignore: 忽略多余字段；
    - populate_by_name: 支持 alias。
    """

    model_config = ConfigDict(
        from_attributes=True,
        extra="ignore",
        populate_by_name=True,
    )


class _In(BaseModel):
    """入参基类：封闭结构，未知字段直接 422。"""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


def _none_if_blank(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v
