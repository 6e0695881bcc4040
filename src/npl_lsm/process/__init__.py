"""Language server process management."""

from npl_lsm.process.server_process import ServerProcessManager

__all__ = ["ServerProcessManager"]
