"""Static website host built on static_host_loop."""

__version__ = "0.1.0"

"""Server identity sent in the server header, together with the version"""
NAME = "static-website-host"
