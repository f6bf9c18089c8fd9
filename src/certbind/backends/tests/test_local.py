"""
测试本地沙箱主机：真实生成 RSA 密钥与 CSR，并用临时 CA 签名后导入。
"""

from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from src.certbind.backends.local import (
    LocalCertificateAuthorityClient,
    LocalListenerBinder,
    LocalServiceController,
    LocalTrustStore,
    parse_descriptor,
)
from src.certbind.csr import core as csr_core
from src.certbind.csr.schemas import SubjectIdentity
from src.certbind.errors import CommandFailed

IDENTITY = SubjectIdentity(
    common_name="console.example.com",
    organization="Acme",
    organizational_unit="IT",
    locality="Berlin",
    state="Berlin",
    country_code="DE",
)


def _request(root, tmp_path, sans=("console.example.com", "mgmt.example.com")):
    descriptor = csr_core.build(IDENTITY, sans)
    inf = csr_core.write_descriptor(descriptor, tmp_path / "work")
    return csr_core.generate(inf, LocalCertificateAuthorityClient(root))


def test_parse_descriptor_roundtrip():
    text = csr_core.render_descriptor(csr_core.build(IDENTITY, ["a.example.com", "b.example.com"]))
    fields, sans = parse_descriptor(text)
    assert fields["subject"] == "CN=console.example.com,OU=IT,O=Acme,L=Berlin,S=Berlin,C=DE"
    assert fields["keylength"] == "2048"
    assert fields["requesttype"] == "PKCS10"
    assert sans == ["a.example.com", "b.example.com"]


def test_parse_descriptor_joined_san_line():
    text = '[Extensions]\n2.5.29.17 = "{text}"\n_continue_ = "dns=a.example.com&dns=b.example.com&"\n'
    assert parse_descriptor(text)[1] == ["a.example.com", "b.example.com"]


def test_create_request_writes_csr_and_pending_key(tmp_path):
    root = tmp_path / "store"
    artifact = _request(root, tmp_path)

    csr = x509.load_pem_x509_csr(artifact.csr_pem)
    assert csr.is_signature_valid
    assert csr.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value == "console.example.com"
    assert csr.subject.get_attributes_for_oid(NameOID.STATE_OR_PROVINCE_NAME)[0].value == "Berlin"
    san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert san.get_values_for_type(x509.DNSName) == ["console.example.com", "mgmt.example.com"]
    assert isinstance(csr.public_key(), rsa.RSAPublicKey)
    assert csr.public_key().key_size == 2048

    assert len(list((root / "REQUEST").glob("*.key.pem"))) == 1
    # 临时描述文件与 CSR 已被清理
    assert list((tmp_path / "work").iterdir()) == []


def test_create_request_without_sans(tmp_path):
    artifact = _request(tmp_path / "store", tmp_path, sans=())
    csr = x509.load_pem_x509_csr(artifact.csr_pem)
    with pytest.raises(x509.ExtensionNotFound):
        csr.extensions.get_extension_for_class(x509.SubjectAlternativeName)


def test_create_request_invalid_descriptor(tmp_path):
    inf = tmp_path / "bad.inf"
    inf.write_text('[NewRequest]\nSubject = "XX=oops"\n', encoding="utf-8")
    with pytest.raises(CommandFailed, match="描述文件无效"):
        LocalCertificateAuthorityClient(tmp_path / "store").create_request(inf, tmp_path / "bad.req")
    assert not (tmp_path / "bad.req").exists()


def test_merge_and_list(tmp_path, sign_csr):
    root = tmp_path / "store"
    artifact = _request(root, tmp_path)
    store = LocalTrustStore(root)

    store.merge(sign_csr(artifact.csr_pem))

    certs = store.list_certificates()
    assert len(certs) == 1
    assert certs[0].has_private_key is True
    assert certs[0].subject.startswith("CN=console.example.com")
    assert "S=Berlin" in certs[0].subject
    assert len(certs[0].thumbprint) == 40
    assert certs[0].not_before.tzinfo is not None
    assert list((root / "REQUEST").iterdir()) == []


def test_merge_without_pending_key(tmp_path, sign_csr):
    """没有对应申请私钥的证书不能导入"""
    artifact = _request(tmp_path / "other-store", tmp_path)
    store = LocalTrustStore(tmp_path / "store")

    with pytest.raises(CommandFailed, match="匹配的申请私钥"):
        store.merge(sign_csr(artifact.csr_pem))
    assert store.list_certificates() == []


def test_merge_garbage(tmp_path):
    path = tmp_path / "garbage.cer"
    path.write_bytes(b"not a certificate")
    with pytest.raises(CommandFailed, match="无法解析证书"):
        LocalTrustStore(tmp_path / "store").merge(path)


def test_list_orders_by_not_before(tmp_path, sign_csr):
    root = tmp_path / "store"
    store = LocalTrustStore(root)
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for days in (3, 1, 2):
        artifact = _request(root, tmp_path)
        store.merge(sign_csr(artifact.csr_pem, not_before=base + timedelta(days=days)))

    starts = sorted(c.not_before for c in store.list_certificates())
    assert starts == [base + timedelta(days=d) for d in (1, 2, 3)]


def test_listener_netsh_semantics(tmp_path, sign_csr):
    root = tmp_path / "store"
    artifact = _request(root, tmp_path)
    store = LocalTrustStore(root)
    store.merge(sign_csr(artifact.csr_pem))
    thumbprint = store.list_certificates()[0].thumbprint
    listener = LocalListenerBinder(root)

    assert listener.delete("0.0.0.0:9443") is False
    listener.add("0.0.0.0:9443", thumbprint, "{app}")
    assert listener.show("0.0.0.0:9443") == thumbprint
    with pytest.raises(CommandFailed, match="已存在证书绑定"):
        listener.add("0.0.0.0:9443", thumbprint, "{app}")
    assert listener.delete("0.0.0.0:9443") is True
    assert listener.show("0.0.0.0:9443") is None


def test_listener_rejects_unknown_thumbprint(tmp_path):
    with pytest.raises(CommandFailed, match="不存在指纹"):
        LocalListenerBinder(tmp_path).add("0.0.0.0:9443", "DEADBEEF", "{app}")


def test_service_controller(tmp_path):
    services = LocalServiceController(tmp_path)
    assert services.state("Console") == "running"
    services.stop("Console")
    services.stop("Console")
    assert services.state("Console") == "stopped"
    services.start("Console")
    assert services.state("Console") == "running"


def test_create_request_quoted_subject_values(tmp_path):
    """含逗号与双引号的主体值原样进入 CSR，不会拆出多余的 RDN"""
    identity = IDENTITY.model_copy(update={"organization": "Acme, Inc.", "organizational_unit": 'R"D'})
    inf = csr_core.write_descriptor(csr_core.build(identity, []), tmp_path / "work")
    artifact = csr_core.generate(inf, LocalCertificateAuthorityClient(tmp_path / "store"))

    csr = x509.load_pem_x509_csr(artifact.csr_pem)
    assert csr.subject.get_attributes_for_oid(NameOID.ORGANIZATION_NAME)[0].value == "Acme, Inc."
    assert csr.subject.get_attributes_for_oid(NameOID.ORGANIZATIONAL_UNIT_NAME)[0].value == 'R"D'
    assert len(csr.subject) == 6


def test_merged_subject_keeps_quoted_values(tmp_path, sign_csr):
    root = tmp_path / "store"
    identity = IDENTITY.model_copy(update={"organization": "Acme, Inc."})
    inf = csr_core.write_descriptor(csr_core.build(identity, []), tmp_path / "work")
    artifact = csr_core.generate(inf, LocalCertificateAuthorityClient(root))
    store = LocalTrustStore(root)

    store.merge(sign_csr(artifact.csr_pem))

    assert 'O="Acme, Inc."' in store.list_certificates()[0].subject


def test_create_request_non_ascii_san(tmp_path):
    """非 A-label 形式的 SAN 以 CommandFailed 报告，且不留下待导入私钥"""
    root = tmp_path / "store"
    inf = csr_core.write_descriptor(csr_core.build(IDENTITY, ["bücher.example.com"]), tmp_path / "work")

    with pytest.raises(CommandFailed, match="无法生成 CSR"):
        LocalCertificateAuthorityClient(root).create_request(inf, tmp_path / "work" / "out.req")
    assert not (tmp_path / "work" / "out.req").exists()
    assert not (root / "REQUEST").exists()


@pytest.mark.parametrize("name", ["bindings.json", "services.json"])
def test_corrupted_state_file(tmp_path, name):
    (tmp_path / name).write_text("{not json", encoding="utf-8")

    with pytest.raises(CommandFailed, match=f"无法读取 {name}"):
        if name == "bindings.json":
            LocalListenerBinder(tmp_path).show("0.0.0.0:9443")
        else:
            LocalServiceController(tmp_path).stop("Console")
