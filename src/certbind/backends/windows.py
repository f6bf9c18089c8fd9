"""
Windows 主机上的外部能力实现。

- CSR 生成与证书导入：certreq
- 证书枚举：PowerShell 读取 Cert:\\LocalMachine\\My 并输出 JSON
- 监听绑定：netsh http sslcert
- 服务启停：PowerShell Stop-Service / Start-Service

所有命令同步阻塞执行，不设超时，超时与重试由系统工具自行处理。
"""

from __future__ import annotations

import json
import re
import subprocess
from pathlib import Path
from typing import List

from loguru import logger

from src.certbind.errors import CommandFailed
from src.certbind.store.schemas import StoredCertificate
from .base import CertificateAuthorityClient, ListenerBinder, ServiceController, TrustStore

# netsh 在端口未绑定时返回 Error: 2（系统找不到指定的文件）
_NOT_BOUND_RE = re.compile(r"Error:\s*2\b")
_CERT_HASH_RE = re.compile(r"Certificate Hash\s*:\s*([0-9a-fA-F]+)")

_LIST_CERTIFICATES_SCRIPT = (
    "Get-ChildItem -Path Cert:\\LocalMachine\\My | "
    "Select-Object Thumbprint, Subject, HasPrivateKey, "
    "@{Name='NotBefore';Expression={$_.NotBefore.ToUniversalTime().ToString('yyyy-MM-ddTHH:mm:ssZ')}} | "
    "ConvertTo-Json -Compress"
)


def _run(cmd: List[str]) -> subprocess.CompletedProcess:
    logger.debug(f"Executing command: {' '.join(cmd)}")
    return subprocess.run(cmd, capture_output=True, text=True)


def _check(result: subprocess.CompletedProcess, what: str) -> subprocess.CompletedProcess:
    if result.returncode != 0:
        output = (result.stderr or result.stdout or "").strip()
        raise CommandFailed(f"{what}失败 (exit {result.returncode}): {output}", result.returncode, output)
    return result


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class _PowerShell:
    def __init__(self, powershell: str = "powershell.exe"):
        self.powershell = powershell

    def _powershell(self, script: str) -> subprocess.CompletedProcess:
        return _run([self.powershell, "-NoProfile", "-NonInteractive", "-Command", script])


class CertReqClient(CertificateAuthorityClient):
    def __init__(self, certreq: str = "certreq.exe"):
        self.certreq = certreq

    def create_request(self, descriptor_path: Path, output_path: Path) -> None:
        # -q 静默，-f 覆盖已存在的输出文件
        _check(
            _run([self.certreq, "-new", "-q", "-f", str(descriptor_path), str(output_path)]),
            "certreq -new ",
        )


class WindowsTrustStore(_PowerShell, TrustStore):
    def __init__(self, certreq: str = "certreq.exe", powershell: str = "powershell.exe"):
        super().__init__(powershell)
        self.certreq = certreq

    def merge(self, cert_path: Path) -> None:
        _check(
            _run([self.certreq, "-accept", "-q", "-machine", str(cert_path)]),
            "certreq -accept ",
        )

    def list_certificates(self) -> List[StoredCertificate]:
        result = _check(self._powershell(_LIST_CERTIFICATES_SCRIPT), "枚举证书存储")
        text = (result.stdout or "").strip()
        if not text:
            return []
        data = json.loads(text)
        # 只有一条记录时 ConvertTo-Json 输出的是对象而不是数组
        if isinstance(data, dict):
            data = [data]
        return [
            StoredCertificate(
                thumbprint=item["Thumbprint"],
                subject=item["Subject"],
                not_before=item["NotBefore"],
                has_private_key=bool(item["HasPrivateKey"]),
            )
            for item in data
        ]


class NetshListenerBinder(ListenerBinder):
    def __init__(self, netsh: str = "netsh.exe"):
        self.netsh = netsh

    def delete(self, ipport: str) -> bool:
        result = _run([self.netsh, "http", "delete", "sslcert", f"ipport={ipport}"])
        if result.returncode == 0:
            return True
        if _NOT_BOUND_RE.search(result.stdout or ""):
            return False
        _check(result, "netsh http delete sslcert ")
        return False

    def add(self, ipport: str, thumbprint: str, app_id: str) -> None:
        _check(
            _run(
                [
                    self.netsh,
                    "http",
                    "add",
                    "sslcert",
                    f"ipport={ipport}",
                    f"certhash={thumbprint}",
                    f"appid={app_id}",
                    "certstorename=MY",
                ]
            ),
            "netsh http add sslcert ",
        )

    def show(self, ipport: str) -> str | None:
        result = _run([self.netsh, "http", "show", "sslcert", f"ipport={ipport}"])
        if result.returncode != 0:
            return None
        m = _CERT_HASH_RE.search(result.stdout or "")
        return m.group(1).upper() if m else None


class WindowsServiceController(_PowerShell, ServiceController):
    # Stop-Service / Start-Service 会等待状态切换完成，对已停止/已运行的服务不报错
    def stop(self, name: str) -> None:
        _check(self._powershell(f"Stop-Service -Name {_ps_quote(name)} -Force -ErrorAction Stop"), f"停止服务 {name} ")

    def start(self, name: str) -> None:
        _check(self._powershell(f"Start-Service -Name {_ps_quote(name)} -ErrorAction Stop"), f"启动服务 {name} ")
