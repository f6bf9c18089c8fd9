"""
证书存储相关的数据模型定义。
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class StoredCertificate(BaseModel):
    """证书存储中一条证书的只读视图。"""

    model_config = ConfigDict(frozen=True)

    thumbprint: str = Field(description="SHA1 指纹，大写十六进制")
    subject: str
    not_before: datetime = Field(description="生效时间（签发时间）")
    has_private_key: bool
