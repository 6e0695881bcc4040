"""Connection to an already running language server over TCP."""

from npl_lsm.connection.tcp import TcpConnectionManager

__all__ = ["TcpConnectionManager"]
