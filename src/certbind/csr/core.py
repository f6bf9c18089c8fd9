"""
证书申请的核心逻辑实现。
包括组装申请描述、渲染 certreq INF 描述文件、调用 CSR 生成能力并清理临时文件。
"""

import uuid
from pathlib import Path
from typing import Iterable

from loguru import logger

from src.certbind.backends.base import CertificateAuthorityClient
from src.certbind.errors import CommandFailed, GenerationFailed
from .dn import unquote_inf
from .schemas import CsrArtifact, KeyPolicy, RequestDescriptor, SubjectIdentity

SAN_EXTENSION_OID = "2.5.29.17"
SERVER_AUTH_OID = "1.3.6.1.5.5.7.3.1"


def build(
    identity: SubjectIdentity,
    san_list: Iterable[str],
    key_policy: KeyPolicy | None = None,
) -> RequestDescriptor:
    """
    组装本次运行唯一的申请描述。
    :param identity: 主体信息，空字段不在此处拒绝。
    :param san_list: 已读取完毕的 SAN 序列，保持顺序。
    :param key_policy: 密钥策略，缺省为 RSA 2048 / SHA256。
    :return: 不可变的 RequestDescriptor。
    """
    return RequestDescriptor(
        request_id=uuid.uuid4().hex,
        identity=identity,
        san_list=tuple(san_list),
        key_policy=key_policy or KeyPolicy(),
    )


def _bool(value: bool) -> str:
    return "TRUE" if value else "FALSE"


def _inf_escape(value: str) -> str:
    return value.replace('"', '""')


def render_descriptor(descriptor: RequestDescriptor) -> str:
    """
    将申请描述渲染为 certreq 使用的 INF 文本。
    SAN 为空时不输出 [Extensions] 节。
    """
    policy = descriptor.key_policy
    lines = [
        "[Version]",
        'Signature="$Windows NT$"',
        "",
        "[NewRequest]",
        f'Subject = "{_inf_escape(descriptor.subject_dn)}"',
        "KeySpec = 1",
        f"KeyAlgorithm = {policy.algorithm}",
        f"KeyLength = {policy.bits}",
        f"Exportable = {_bool(policy.exportable)}",
        f"MachineKeySet = {_bool(policy.machine_key_set)}",
        "SMIME = FALSE",
        "PrivateKeyArchive = FALSE",
        "UserProtected = FALSE",
        "UseExistingKeySet = FALSE",
        'ProviderName = "Microsoft RSA SChannel Cryptographic Provider"',
        "ProviderType = 12",
        "RequestType = PKCS10",
        "KeyUsage = 0xa0",
        f"HashAlgorithm = {policy.hash_algorithm.lower()}",
        "",
        "[EnhancedKeyUsageExtension]",
        f"OID = {SERVER_AUTH_OID}",
    ]
    if descriptor.san_list:
        lines += ["", "[Extensions]", f'{SAN_EXTENSION_OID} = "{{text}}"']
        lines += [f'_continue_ = "dns={name}&"' for name in descriptor.san_list]
    return "\r\n".join(lines) + "\r\n"


def write_descriptor(descriptor: RequestDescriptor, directory: Path) -> Path:
    """
    将 INF 写入 directory 下以 request_id 命名的临时文件，返回其路径。
    写入失败时删除不完整的文件。
    :raises GenerationFailed: 无法写入描述文件。
    """
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"certbind-{descriptor.request_id}.inf"
    try:
        path.write_text(render_descriptor(descriptor), encoding="utf-8")
    except OSError as e:
        path.unlink(missing_ok=True)
        raise GenerationFailed(f"无法写入申请描述文件 {path.name}: {e}") from e
    logger.debug(f"申请描述已写入: {path}")
    return path


def generate(descriptor_path: Path, ca_client: CertificateAuthorityClient) -> CsrArtifact:
    """
    调用 CSR 生成能力并读回 CSR。
    无论成功与否，描述文件与 CSR 文件都会被删除。
    :raises GenerationFailed: 生成失败或未产出 CSR 文件。
    """
    csr_path = descriptor_path.with_suffix(".req")
    request_id = descriptor_path.stem.removeprefix("certbind-")
    try:
        subject = _read_subject(descriptor_path)
        try:
            ca_client.create_request(descriptor_path, csr_path)
        except CommandFailed as e:
            logger.error(f"CSR 生成失败: {e}")
            raise GenerationFailed(f"CSR 生成工具返回错误: {e}") from e
        if not csr_path.exists():
            raise GenerationFailed(f"CSR 生成工具未产出文件: {csr_path.name}")
        csr_pem = csr_path.read_bytes()
        logger.info(f"CSR 已生成: subject={subject}, {len(csr_pem)} 字节")
        return CsrArtifact(request_id=request_id, subject=subject, csr_pem=csr_pem)
    finally:
        for path in (descriptor_path, csr_path):
            path.unlink(missing_ok=True)
        logger.debug(f"已清理临时文件: {descriptor_path.name}, {csr_path.name}")


def _read_subject(descriptor_path: Path) -> str:
    for line in descriptor_path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.partition("=")
        if sep and key.strip().lower() == "subject":
            return unquote_inf(value)
    return ""
