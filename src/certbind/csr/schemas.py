"""
文件功能：
    定义证书申请相关的数据模型（Pydantic）。

公开接口：
    - SubjectIdentity: 证书主体信息
    - KeyPolicy: 密钥策略
    - RequestDescriptor: 一次申请的完整描述
    - CsrArtifact: 生成的 CSR
"""

from __future__ import annotations

from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field

from .dn import format_dn


class SubjectIdentity(BaseModel):
    """证书主体信息。空字符串由调用方负责，这里不做拒绝。"""

    model_config = ConfigDict(frozen=True)

    common_name: str = Field(description="CN，通常为控制台的主机名")
    organization: str = Field(description="O")
    organizational_unit: str = Field(description="OU")
    locality: str = Field(description="L")
    state: str = Field(description="S，省/州")
    country_code: str = Field(description="C，两位国家代码")


class KeyPolicy(BaseModel):
    """密钥策略，默认 RSA 2048 / SHA256，可导出，存放于计算机级密钥存储。"""

    model_config = ConfigDict(frozen=True)

    algorithm: str = "RSA"
    bits: int = 2048
    hash_algorithm: str = "SHA256"
    exportable: bool = True
    machine_key_set: bool = True


class RequestDescriptor(BaseModel):
    """
    一次运行中唯一的申请描述，CSR 生成后不再变化。
    """

    model_config = ConfigDict(frozen=True)

    request_id: str = Field(description="本次运行的随机标识，用于临时文件命名")
    identity: SubjectIdentity
    san_list: Tuple[str, ...] = Field(default=(), description="DNS SAN，保持输入顺序，不去重")
    key_policy: KeyPolicy = Field(default_factory=KeyPolicy)

    @property
    def subject_dn(self) -> str:
        """certreq 形式的 DN，含逗号等特殊字符的值加引号。"""
        i = self.identity
        return format_dn(
            [
                ("CN", i.common_name),
                ("OU", i.organizational_unit),
                ("O", i.organization),
                ("L", i.locality),
                ("S", i.state),
                ("C", i.country_code),
            ]
        )


class CsrArtifact(BaseModel):
    """生成的 CSR。私钥由系统密钥存储持有，这里只有请求本身。"""

    model_config = ConfigDict(frozen=True)

    request_id: str
    subject: str
    csr_pem: bytes
