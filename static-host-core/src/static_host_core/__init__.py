"""io_uring primitives used by static_host_loop."""

__version__ = "0.1.0"
