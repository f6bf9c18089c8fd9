"""
监听绑定流程的状态定义。
"""

from enum import Enum


class BindingState(str, Enum):
    SERVICE_RUNNING = "service_running"
    SERVICE_STOPPED = "service_stopped"
    LISTENER_UNBOUND = "listener_unbound"
    LISTENER_BOUND = "listener_bound"
    # 服务已重新运行且端口已绑定新证书
    BOUND = "bound"
