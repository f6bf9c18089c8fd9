"""
证书申请与绑定流程的错误类型。

每种错误都对应流程中的一个步骤，并且都是终止性的：出现后本次运行直接结束，
由操作员处理（提权、修正路径、重新提供证书）后再重新运行。
"""


class CommandFailed(RuntimeError):
    """外部能力（certreq、证书存储、netsh、服务控制）调用失败。"""

    def __init__(self, message: str, returncode: int | None = None, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class EnrollmentError(Exception):
    """流程错误的基类。step 为面向用户的步骤名称。"""

    step = "证书流程"
    exit_code = 1


class ValidationError(EnrollmentError):
    step = "权限检查"


class GenerationFailed(EnrollmentError):
    step = "生成 CSR"


class FileNotFound(EnrollmentError):
    step = "读取签名证书"


class MergeFailed(EnrollmentError):
    step = "导入证书"


class NoMatchingCertificate(EnrollmentError):
    step = "选择证书"


class BindFailed(EnrollmentError):
    step = "绑定监听端口"
