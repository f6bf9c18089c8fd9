"""
外部能力实现集合。

按配置项 backend 选择：
- windows: certreq / PowerShell / netsh，真实主机
- local:   基于 cryptography 的本地沙箱
"""

from __future__ import annotations

from dataclasses import dataclass

from src.certbind.config import Config
from .base import CertificateAuthorityClient, ListenerBinder, ServiceController, TrustStore
from .local import (
    LocalCertificateAuthorityClient,
    LocalListenerBinder,
    LocalServiceController,
    LocalTrustStore,
)
from .windows import CertReqClient, NetshListenerBinder, WindowsServiceController, WindowsTrustStore


@dataclass
class Backend:
    ca: CertificateAuthorityClient
    store: TrustStore
    listener: ListenerBinder
    services: ServiceController


def get_backend(cfg: Config) -> Backend:
    if cfg.backend == "local":
        root = cfg.local_store_dir
        return Backend(
            ca=LocalCertificateAuthorityClient(root),
            store=LocalTrustStore(root),
            listener=LocalListenerBinder(root),
            services=LocalServiceController(root),
        )
    return Backend(
        ca=CertReqClient(cfg.certreq_path),
        store=WindowsTrustStore(cfg.certreq_path, cfg.powershell_path),
        listener=NetshListenerBinder(cfg.netsh_path),
        services=WindowsServiceController(cfg.powershell_path),
    )


__all__ = [
    "Backend",
    "get_backend",
    "CertificateAuthorityClient",
    "TrustStore",
    "ListenerBinder",
    "ServiceController",
]
