"""
收集证书主体信息与 SAN 列表。

输入通过可注入的 read(prompt) 回调获取，便于 CLI 使用 click.prompt、测试使用预置答案。
"""

from __future__ import annotations

from typing import Callable, Iterator

from loguru import logger

from .schemas import SubjectIdentity

Reader = Callable[[str], str]

# (字段名, 提示语)
_IDENTITY_PROMPTS = (
    ("common_name", "通用名称 CN（主机名）"),
    ("organization", "组织 O"),
    ("organizational_unit", "部门 OU"),
    ("locality", "城市 L"),
    ("state", "省/州 S"),
    ("country_code", "国家代码 C"),
)


def read_san_entries(read: Reader, prompt: str = "SAN DNS 名称（直接回车结束）") -> Iterator[str]:
    """
    逐条读取 SAN，遇到空输入即结束。
    :param read: 读取一行输入的回调。
    :param prompt: 每次读取时的提示语。
    :return: 按输入顺序产出的 SAN，不去重。
    """
    while True:
        value = (read(prompt) or "").strip()
        if not value:
            return
        yield value


def _read_non_empty(read: Reader, prompt: str) -> str:
    while True:
        value = (read(prompt) or "").strip()
        if value:
            return value
        logger.warning(f"{prompt} 不能为空，请重新输入")


def collect_identity(read: Reader) -> SubjectIdentity:
    """依次询问主体字段，空值会被重新询问。"""
    values = {name: _read_non_empty(read, prompt) for name, prompt in _IDENTITY_PROMPTS}
    return SubjectIdentity(**values)
