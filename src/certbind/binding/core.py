"""
将选中的证书绑定到宿主服务的 TLS 监听端口。

状态流转：
    SERVICE_RUNNING -> 停止服务 -> SERVICE_STOPPED
    -> 删除端口上原有绑定（没有绑定视为成功）-> LISTENER_UNBOUND
    -> 以固定应用 ID 绑定新证书指纹 -> LISTENER_BOUND
    -> 启动服务 -> BOUND
绑定失败时仍会尝试启动服务，避免宿主服务停留在停止状态。
"""

from loguru import logger

from src.certbind.backends.base import ListenerBinder, ServiceController
from src.certbind.errors import BindFailed, CommandFailed
from src.certbind.store.schemas import StoredCertificate
from .schemas import BindingState


def _unbind(listener: ListenerBinder, ipport: str) -> None:
    try:
        if listener.delete(ipport):
            logger.info(f"已删除 {ipport} 上原有的证书绑定")
        else:
            logger.info(f"{ipport} 上没有证书绑定，跳过删除")
    except CommandFailed as e:
        logger.warning(f"删除 {ipport} 原有绑定失败，继续绑定新证书: {e}")


def bind(
    certificate: StoredCertificate,
    port: int,
    *,
    listener: ListenerBinder,
    services: ServiceController,
    service_name: str,
    app_id: str,
    ip: str = "0.0.0.0",
) -> BindingState:
    """
    重新绑定端口证书并重启服务。
    :return: 成功时为 BindingState.BOUND。
    :raises BindFailed: 停止服务、绑定或重启服务失败。
    """
    ipport = f"{ip}:{port}"
    state = BindingState.SERVICE_RUNNING

    def enter(new_state: BindingState) -> BindingState:
        logger.debug(f"绑定状态: {state.value} -> {new_state.value}")
        return new_state

    try:
        services.stop(service_name)
    except CommandFailed as e:
        raise BindFailed(f"无法停止服务 {service_name}: {e}") from e
    state = enter(BindingState.SERVICE_STOPPED)
    logger.info(f"服务 {service_name} 已停止")

    bind_error: BindFailed | None = None
    _unbind(listener, ipport)
    state = enter(BindingState.LISTENER_UNBOUND)
    try:
        listener.add(ipport, certificate.thumbprint, app_id)
        state = enter(BindingState.LISTENER_BOUND)
        logger.info(f"已将证书 {certificate.thumbprint} 绑定到 {ipport} (appid={app_id})")
    except CommandFailed as e:
        logger.error(f"绑定证书到 {ipport} 失败: {e}")
        bind_error = BindFailed(f"无法将证书 {certificate.thumbprint} 绑定到 {ipport}: {e}")
        bind_error.__cause__ = e

    try:
        services.start(service_name)
    except CommandFailed as e:
        logger.error(f"服务 {service_name} 启动失败: {e}")
        if bind_error is not None:
            raise bind_error
        raise BindFailed(f"证书已绑定，但服务 {service_name} 启动失败: {e}") from e
    logger.info(f"服务 {service_name} 已重新启动")

    if bind_error is not None:
        raise bind_error
    return enter(BindingState.BOUND)
