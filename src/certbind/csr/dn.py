"""
X.500 DN 文本与 INF 引号值的转义。

certreq 的 Subject 写法：含特殊字符的属性值整体加双引号，值内的双引号写两次；
INF 中的带引号值同样以两个双引号表示一个双引号。
"""

from typing import Iterable, List, Tuple

_SPECIAL = set(',+"\\<>;=')


def quote_value(value: str) -> str:
    """需要时为 DN 属性值加引号，普通值原样返回。"""
    if not value:
        return value
    if any(ch in _SPECIAL for ch in value) or value != value.strip() or value.startswith("#"):
        return '"' + value.replace('"', '""') + '"'
    return value


def format_dn(pairs: Iterable[Tuple[str, str]], separator: str = ",") -> str:
    return separator.join(f"{key}={quote_value(value)}" for key, value in pairs)


def parse_dn(text: str) -> List[Tuple[str, str]]:
    """
    将 DN 文本拆成 (缩写, 值) 列表，识别引号值。
    :raises ValueError: 引号未闭合或某一段缺少 "="。
    """
    pairs = []
    for part in _split_outside_quotes(text, ","):
        key, sep, value = part.partition("=")
        if not sep:
            raise ValueError(f"无法识别的 Subject 片段: {part}")
        pairs.append((key.strip(), _unquote(value.strip())))
    return pairs


def unquote_inf(value: str) -> str:
    """去掉 INF 值两端的引号，并还原值内成对的双引号。"""
    value = value.strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1].replace('""', '"')
    return value


def strip_inf_comment(line: str) -> str:
    """去掉引号外 ";" 之后的注释。"""
    return _split_outside_quotes(line, ";")[0]


def _unquote(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1].replace('""', '"')
    return value


def _split_outside_quotes(text: str, delimiter: str) -> List[str]:
    parts, current, quoted = [], [], False
    for ch in text:
        if ch == '"':
            # 值内的 "" 会让状态翻转两次，结果不变
            quoted = not quoted
        elif ch == delimiter and not quoted:
            parts.append("".join(current))
            current = []
            continue
        current.append(ch)
    if quoted:
        raise ValueError(f"引号未闭合: {text}")
    parts.append("".join(current))
    return parts
