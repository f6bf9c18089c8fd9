"""
签名证书的导入与选择。
"""

from pathlib import Path

from loguru import logger

from src.certbind.backends.base import TrustStore
from src.certbind.errors import CommandFailed, FileNotFound, MergeFailed, NoMatchingCertificate
from .schemas import StoredCertificate


def accept(signed_cert_path: Path, store: TrustStore) -> None:
    """
    将操作员提供的签名证书导入计算机证书存储，并与申请时生成的私钥关联。
    :param signed_cert_path: 签名证书文件路径，只检查存在性，不解析内容。
    :raises FileNotFound: 路径不存在，此时不会触碰证书存储。
    :raises MergeFailed: 证书存储拒绝该证书（主体/私钥不匹配、格式错误等）。
    """
    path = Path(signed_cert_path)
    if not path.is_file():
        raise FileNotFound(f"签名证书文件不存在: {path}")

    logger.info(f"正在导入签名证书: {path}")
    try:
        store.merge(path)
    except CommandFailed as e:
        logger.error(f"证书导入失败: {e}")
        raise MergeFailed(f"证书存储拒绝导入 {path.name}: {e}") from e


def select(common_name: str, store: TrustStore) -> StoredCertificate:
    """
    在证书存储中选出主体包含 common_name 且带私钥的最新证书。

    同一主体重复运行流程会在存储中留下旧证书，按生效时间倒序取第一个，
    保证绑定的是最新的密钥。
    :raises NoMatchingCertificate: 没有满足条件的证书。
    """
    needle = common_name.lower()
    candidates = [
        c for c in store.list_certificates()
        if c.has_private_key and needle in c.subject.lower()
    ]
    if not candidates:
        raise NoMatchingCertificate(f"证书存储中没有主体包含 {common_name} 且带私钥的证书")

    candidates.sort(key=lambda c: c.not_before, reverse=True)
    chosen = candidates[0]
    logger.info(
        f"已选择证书: thumbprint={chosen.thumbprint}, subject={chosen.subject}, "
        f"not_before={chosen.not_before.isoformat()}（共 {len(candidates)} 个候选）"
    )
    return chosen
