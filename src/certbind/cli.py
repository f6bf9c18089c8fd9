"""
命令行入口：交互式收集信息并驱动证书申请、导入与绑定流程。
"""

from __future__ import annotations

from functools import wraps
from pathlib import Path
from typing import Tuple

import click
from loguru import logger

from src.certbind.config import Config, config
from src.certbind.csr.identity import collect_identity, read_san_entries
from src.certbind.csr.schemas import CsrArtifact, SubjectIdentity
from src.certbind.errors import EnrollmentError
from src.certbind.workflow import services


def setup_logging(level: str) -> None:
    logger.remove()
    # 经 click.echo 输出，跟随当前的 stderr
    logger.add(lambda message: click.echo(message, err=True, nl=False), level=level.upper())


def _ask(prompt: str) -> str:
    return click.prompt(prompt, default="", show_default=False)


def _fail_on_enrollment_error(func):
    """将流程错误转换为面向用户的提示与退出码。"""

    @wraps(func)
    @click.pass_context
    def wrapper(ctx: click.Context, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except EnrollmentError as e:
            click.secho(f"{e.step}失败: {e}", fg="red", err=True)
            ctx.exit(e.exit_code)

    return wrapper


def _request(cfg: Config) -> Tuple[SubjectIdentity, CsrArtifact]:
    identity = collect_identity(_ask)
    san_entries = list(read_san_entries(_ask))
    artifact = services.request_certificate(identity, san_entries, cfg)
    click.echo(artifact.csr_pem.decode("ascii", errors="replace"))
    if click.confirm("是否将 CSR 导出到文件？", default=True):
        path = services.export_csr(artifact, cfg.export_dir)
        click.secho(f"CSR 已保存到 {path}", fg="green")
    return identity, artifact


def _install(cfg: Config, signed_cert: Path, common_name: str) -> None:
    certificate = services.install_certificate(signed_cert, common_name, cfg)
    click.secho(
        f"证书 {certificate.thumbprint} 已绑定到 {cfg.listener_ip}:{cfg.listener_port}，"
        f"服务 {cfg.service_name} 已重新启动",
        fg="green",
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="输出调试日志")
@click.pass_context
def cli(ctx: click.Context, verbose: bool):
    """管理控制台 TLS 证书申请与绑定工具。"""
    cfg = ctx.obj if isinstance(ctx.obj, Config) else config
    setup_logging("DEBUG" if verbose else cfg.log_level)
    ctx.obj = cfg


@cli.command()
@click.pass_obj
@_fail_on_enrollment_error
def enroll(cfg: Config):
    """完整流程：生成 CSR，等待签名证书，导入并绑定。"""
    services.ensure_elevated(cfg)
    identity, _ = _request(cfg)
    click.echo("请将 CSR 提交给证书颁发机构签名，拿到证书后继续。")
    signed_cert = click.prompt("签名证书文件路径", type=click.Path(dir_okay=False, path_type=Path))
    _install(cfg, signed_cert, identity.common_name)


@cli.command()
@click.pass_obj
@_fail_on_enrollment_error
def request(cfg: Config):
    """只生成 CSR。"""
    services.ensure_elevated(cfg)
    _request(cfg)


@cli.command()
@click.argument("signed_cert", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--common-name", "-c", required=True, help="申请时使用的 CN")
@click.pass_obj
@_fail_on_enrollment_error
def install(cfg: Config, signed_cert: Path, common_name: str):
    """导入签名证书并绑定到监听端口。"""
    services.ensure_elevated(cfg)
    _install(cfg, signed_cert, common_name)


@cli.command()
@click.pass_obj
@_fail_on_enrollment_error
def status(cfg: Config):
    """显示监听端口当前绑定的证书指纹。"""
    thumbprint = services.binding_status(cfg)
    ipport = f"{cfg.listener_ip}:{cfg.listener_port}"
    if thumbprint:
        click.echo(f"{ipport} -> {thumbprint}")
    else:
        click.echo(f"{ipport} 未绑定证书")
