"""
外部能力的抽象接口。

核心流程只依赖这些接口，具体实现见 windows.py（真实主机）与 local.py（本地沙箱）。
所有实现在失败时抛出 CommandFailed。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from src.certbind.store.schemas import StoredCertificate


class CertificateAuthorityClient(ABC):
    """CSR 生成能力：读取描述文件，写出 PKCS#10 请求，私钥留在系统密钥存储。"""

    @abstractmethod
    def create_request(self, descriptor_path: Path, output_path: Path) -> None: ...


class TrustStore(ABC):
    """计算机级证书存储。"""

    @abstractmethod
    def merge(self, cert_path: Path) -> None:
        """导入签名证书并与生成 CSR 时的私钥关联。"""

    @abstractmethod
    def list_certificates(self) -> List[StoredCertificate]: ...


class ListenerBinder(ABC):
    """按 IP:端口 管理 TLS 证书绑定。"""

    @abstractmethod
    def delete(self, ipport: str) -> bool:
        """删除绑定；端口上没有绑定时返回 False 而不是报错。"""

    @abstractmethod
    def add(self, ipport: str, thumbprint: str, app_id: str) -> None: ...

    @abstractmethod
    def show(self, ipport: str) -> str | None:
        """返回端口当前绑定的证书指纹，没有则返回 None。"""


class ServiceController(ABC):
    """宿主服务的启停，已停止/已运行不视为错误。"""

    @abstractmethod
    def stop(self, name: str) -> None: ...

    @abstractmethod
    def start(self, name: str) -> None: ...
