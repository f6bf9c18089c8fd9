"""
本地沙箱主机：在没有 Windows 证书存储的环境中演练完整流程（也用于测试）。

目录布局（root 为配置项 local_store_dir）：
- REQUEST/<key_id>.key.pem   生成 CSR 时创建、尚未导入证书的私钥
- MY/<thumbprint>.crt.pem    已导入的证书
- MY/<thumbprint>.key.pem    与证书关联的私钥
- bindings.json              监听绑定，ipport -> {certhash, appid}
- services.json              服务状态，name -> running/stopped

CSR 生成读取与 certreq 相同的 INF 描述文件。
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Dict, List, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import Encoding, NoEncryption, PrivateFormat
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from loguru import logger

from src.certbind.csr.dn import format_dn, parse_dn, strip_inf_comment, unquote_inf
from src.certbind.errors import CommandFailed
from src.certbind.store.schemas import StoredCertificate
from .base import CertificateAuthorityClient, ListenerBinder, ServiceController, TrustStore

# DN 缩写与 OID 的对应关系，S 为 Windows 对省/州的写法
_DN_ATTRIBUTES = {
    "CN": NameOID.COMMON_NAME,
    "OU": NameOID.ORGANIZATIONAL_UNIT_NAME,
    "O": NameOID.ORGANIZATION_NAME,
    "L": NameOID.LOCALITY_NAME,
    "S": NameOID.STATE_OR_PROVINCE_NAME,
    "ST": NameOID.STATE_OR_PROVINCE_NAME,
    "C": NameOID.COUNTRY_NAME,
}
_OID_SHORT_NAMES = {oid: short for short, oid in _DN_ATTRIBUTES.items() if short != "ST"}

_HASHES = {
    "sha1": hashes.SHA1,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


def parse_descriptor(text: str) -> Tuple[Dict[str, str], List[str]]:
    """
    解析 INF 描述文件。
    :return: ([NewRequest] 节的键值, SAN DNS 名称列表)
    """
    section = ""
    new_request: Dict[str, str] = {}
    sans: List[str] = []
    for raw in text.splitlines():
        line = strip_inf_comment(raw).strip()
        if not line:
            continue
        if line.startswith("[") and line.endswith("]"):
            section = line.strip("[]").lower()
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key, value = key.strip(), unquote_inf(value)
        if section == "newrequest":
            new_request[key.lower()] = value
        elif section == "extensions" and key.lower() == "_continue_":
            for item in value.split("&"):
                kind, _, name = item.partition("=")
                if kind.strip().lower() == "dns" and name.strip():
                    sans.append(name.strip())
    return new_request, sans


def _parse_subject(subject: str) -> x509.Name:
    attributes = []
    for short, value in parse_dn(subject):
        oid = _DN_ATTRIBUTES.get(short.upper())
        if oid is None:
            raise ValueError(f"无法识别的 Subject 片段: {short}={value}")
        if value:
            attributes.append(x509.NameAttribute(oid, value))
    return x509.Name(attributes)


def _format_subject(name: x509.Name) -> str:
    return format_dn(
        ((_OID_SHORT_NAMES.get(attr.oid, attr.oid.dotted_string), attr.value) for attr in name),
        separator=", ",
    )


def _key_id(public_key) -> str:
    der = public_key.public_bytes(Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)
    return hashlib.sha1(der).hexdigest()


def _load_certificate(data: bytes) -> x509.Certificate:
    if b"-----BEGIN CERTIFICATE-----" in data:
        return x509.load_pem_x509_certificate(data)
    return x509.load_der_x509_certificate(data)


class _LocalHost:
    def __init__(self, root: Path):
        self.root = Path(root)

    @property
    def request_dir(self) -> Path:
        return self.root / "REQUEST"

    @property
    def my_dir(self) -> Path:
        return self.root / "MY"

    def _read_json(self, name: str) -> Dict[str, object]:
        path = self.root / name
        if not path.exists():
            return {}
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise CommandFailed(f"无法读取 {name}: {e}", 1) from e

    def _write_json(self, name: str, data: Dict[str, object]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / name).write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


class LocalCertificateAuthorityClient(_LocalHost, CertificateAuthorityClient):
    def create_request(self, descriptor_path: Path, output_path: Path) -> None:
        try:
            fields, sans = parse_descriptor(descriptor_path.read_text(encoding="utf-8"))
            if fields.get("requesttype", "PKCS10").upper() != "PKCS10":
                raise ValueError(f"不支持的 RequestType: {fields['requesttype']}")
            subject = _parse_subject(fields.get("subject", ""))
            key_length = int(fields.get("keylength", "2048"))
            hash_cls = _HASHES[fields.get("hashalgorithm", "sha256").lower()]
        except (OSError, ValueError, KeyError) as e:
            raise CommandFailed(f"描述文件无效: {e}", 1) from e

        try:
            private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_length)
            builder = (
                x509.CertificateSigningRequestBuilder()
                .subject_name(subject)
                .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
            )
            if sans:
                # 非 ASCII 的 SAN 须先转换为 A-label（xn--）
                builder = builder.add_extension(
                    x509.SubjectAlternativeName([x509.DNSName(name) for name in sans]),
                    critical=False,
                )
            csr = builder.sign(private_key, hash_cls())
        except (TypeError, ValueError) as e:
            raise CommandFailed(f"无法生成 CSR: {e}", 1) from e

        key_path = self.request_dir / f"{_key_id(private_key.public_key())}.key.pem"
        try:
            self.request_dir.mkdir(parents=True, exist_ok=True)
            key_path.write_bytes(
                private_key.private_bytes(
                    encoding=Encoding.PEM,
                    format=PrivateFormat.PKCS8,
                    encryption_algorithm=NoEncryption(),
                )
            )
            output_path.write_bytes(csr.public_bytes(Encoding.PEM))
        except OSError as e:
            key_path.unlink(missing_ok=True)
            raise CommandFailed(f"无法写入 CSR 或私钥: {e}", 1) from e
        logger.debug(f"本地 CSR 已生成，待导入私钥: {key_path.name}")


class LocalTrustStore(_LocalHost, TrustStore):
    def merge(self, cert_path: Path) -> None:
        try:
            cert = _load_certificate(Path(cert_path).read_bytes())
        except (OSError, ValueError) as e:
            raise CommandFailed(f"无法解析证书: {e}", 1) from e

        pending_key = self.request_dir / f"{_key_id(cert.public_key())}.key.pem"
        if not pending_key.exists():
            raise CommandFailed("证书存储中找不到与该证书匹配的申请私钥", 1)

        thumbprint = cert.fingerprint(hashes.SHA1()).hex().upper()
        self.my_dir.mkdir(parents=True, exist_ok=True)
        (self.my_dir / f"{thumbprint}.crt.pem").write_bytes(cert.public_bytes(Encoding.PEM))
        pending_key.replace(self.my_dir / f"{thumbprint}.key.pem")
        logger.debug(f"本地证书已导入: {thumbprint}")

    def list_certificates(self) -> List[StoredCertificate]:
        if not self.my_dir.exists():
            return []
        result = []
        for crt_path in sorted(self.my_dir.glob("*.crt.pem")):
            cert = x509.load_pem_x509_certificate(crt_path.read_bytes())
            thumbprint = crt_path.name.removesuffix(".crt.pem")
            result.append(
                StoredCertificate(
                    thumbprint=thumbprint,
                    subject=_format_subject(cert.subject),
                    not_before=cert.not_valid_before_utc,
                    has_private_key=(self.my_dir / f"{thumbprint}.key.pem").exists(),
                )
            )
        return result


class LocalListenerBinder(_LocalHost, ListenerBinder):
    def delete(self, ipport: str) -> bool:
        bindings = self._read_json("bindings.json")
        if ipport not in bindings:
            return False
        del bindings[ipport]
        self._write_json("bindings.json", bindings)
        return True

    def add(self, ipport: str, thumbprint: str, app_id: str) -> None:
        bindings = self._read_json("bindings.json")
        # 与 netsh 一致：端口已有绑定时 add 失败，需要先 delete
        if ipport in bindings:
            raise CommandFailed(f"{ipport} 已存在证书绑定", 183)
        if not (self.my_dir / f"{thumbprint}.crt.pem").exists():
            raise CommandFailed(f"证书存储中不存在指纹为 {thumbprint} 的证书", 1312)
        bindings[ipport] = {"certhash": thumbprint, "appid": app_id}
        self._write_json("bindings.json", bindings)

    def show(self, ipport: str) -> str | None:
        entry = self._read_json("bindings.json").get(ipport)
        return entry["certhash"] if entry else None


class LocalServiceController(_LocalHost, ServiceController):
    def state(self, name: str) -> str:
        return str(self._read_json("services.json").get(name, "running"))

    def _set(self, name: str, state: str) -> None:
        services = self._read_json("services.json")
        services[name] = state
        self._write_json("services.json", services)

    def stop(self, name: str) -> None:
        self._set(name, "stopped")

    def start(self, name: str) -> None:
        self._set(name, "running")
