from static_host_core.log import get_logger

__all__ = ["get_logger"]
