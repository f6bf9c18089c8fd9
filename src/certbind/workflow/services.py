"""
证书申请与绑定流程的业务逻辑层。
此模块按顺序串联各步骤，提供更清晰的接口供 CLI 调用：
收集 -> 组装描述 -> 生成 CSR -> （线下签名）-> 导入 -> 选择 -> 绑定。
"""

from __future__ import annotations

import ctypes
import os
import re
from pathlib import Path
from typing import Iterable

from loguru import logger

from src.certbind.backends import Backend, get_backend
from src.certbind.binding import core as binding_core
from src.certbind.config import Config, config
from src.certbind.csr import core as csr_core
from src.certbind.csr.dn import parse_dn
from src.certbind.csr.schemas import CsrArtifact, KeyPolicy, SubjectIdentity
from src.certbind.errors import BindFailed, CommandFailed, ValidationError
from src.certbind.store import core as store_core
from src.certbind.store.schemas import StoredCertificate


def _is_elevated() -> bool:
    if os.name == "nt":
        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except (AttributeError, OSError):
            return False
    return os.geteuid() == 0


def ensure_elevated(cfg: Config = config) -> None:
    """
    在任何操作开始前检查管理员权限。
    :raises ValidationError: 当前进程没有管理员/root 权限。
    """
    if not cfg.require_elevation:
        return
    if not _is_elevated():
        raise ValidationError("需要以管理员身份运行：写入计算机证书存储与修改端口绑定都需要提升权限")


def request_certificate(
    identity: SubjectIdentity,
    san_entries: Iterable[str],
    cfg: Config = config,
    backend: Backend | None = None,
    key_policy: KeyPolicy | None = None,
) -> CsrArtifact:
    """
    组装申请描述并生成 CSR。临时描述文件与 CSR 文件在返回前已被删除。
    :raises GenerationFailed: CSR 生成失败。
    """
    backend = backend or get_backend(cfg)
    descriptor = csr_core.build(identity, san_entries, key_policy)
    logger.info(
        f"申请描述已组装: request_id={descriptor.request_id}, subject={descriptor.subject_dn}, "
        f"SAN={list(descriptor.san_list)}"
    )
    descriptor_path = csr_core.write_descriptor(descriptor, cfg.temp_dir)
    return csr_core.generate(descriptor_path, backend.ca)


def export_csr(artifact: CsrArtifact, directory: Path) -> Path:
    """将 CSR 写入 directory/<CN>.csr，返回文件路径。"""
    try:
        names = [value for key, value in parse_dn(artifact.subject) if key.upper() == "CN"]
    except ValueError:
        names = []
    name = (names[0].strip() if names else "") or artifact.request_id
    # 文件名中去掉通配符等不可用字符
    name = re.sub(r"[^\w.-]", "_", name)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.csr"
    path.write_bytes(artifact.csr_pem)
    logger.info(f"CSR 已导出: {path}")
    return path


def install_certificate(
    signed_cert_path: Path,
    common_name: str,
    cfg: Config = config,
    backend: Backend | None = None,
) -> StoredCertificate:
    """
    导入签名证书、选出最新证书并绑定到监听端口。
    :raises FileNotFound / MergeFailed / NoMatchingCertificate / BindFailed
    """
    backend = backend or get_backend(cfg)
    store_core.accept(signed_cert_path, backend.store)
    certificate = store_core.select(common_name, backend.store)
    binding_core.bind(
        certificate,
        cfg.listener_port,
        listener=backend.listener,
        services=backend.services,
        service_name=cfg.service_name,
        app_id=cfg.app_id,
        ip=cfg.listener_ip,
    )
    logger.info(f"证书 {certificate.thumbprint} 已绑定到 {cfg.listener_ip}:{cfg.listener_port}")
    return certificate


def binding_status(cfg: Config = config, backend: Backend | None = None) -> str | None:
    """
    返回监听端口当前绑定的证书指纹。
    :raises BindFailed: 无法查询绑定。
    """
    backend = backend or get_backend(cfg)
    ipport = f"{cfg.listener_ip}:{cfg.listener_port}"
    try:
        return backend.listener.show(ipport)
    except CommandFailed as e:
        raise BindFailed(f"无法查询 {ipport} 的证书绑定: {e}") from e
