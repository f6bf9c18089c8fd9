"""
测试共用的 fixture：本地沙箱配置与一个临时 CA。
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import NameOID

from src.certbind.config import Config


@pytest.fixture
def local_cfg(tmp_path) -> Config:
    return Config(
        backend="local",
        local_store_dir=tmp_path / "store",
        temp_dir=tmp_path / "tmp",
        export_dir=tmp_path / "export",
        require_elevation=False,
        service_name="TestConsole",
        listener_port=9443,
    )


@pytest.fixture
def sign_csr(tmp_path):
    """返回一个签名函数：sign(csr_pem, not_before=None) -> 证书文件路径。"""
    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Test Issuing CA")])
    counter = {"n": 0}

    def sign(csr_pem: bytes, not_before: datetime | None = None) -> Path:
        csr = x509.load_pem_x509_csr(csr_pem)
        start = not_before or datetime.now(timezone.utc) - timedelta(minutes=1)
        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(ca_name)
            .public_key(csr.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(start)
            .not_valid_after(start + timedelta(days=365))
        )
        for ext in csr.extensions:
            builder = builder.add_extension(ext.value, critical=ext.critical)
        cert = builder.sign(private_key=ca_key, algorithm=hashes.SHA256())

        counter["n"] += 1
        path = tmp_path / f"signed-{counter['n']}.cer"
        path.write_bytes(cert.public_bytes(Encoding.PEM))
        return path

    return sign
