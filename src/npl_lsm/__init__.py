"""npl-lsm: lifecycle manager for the NPL language server binary."""

__version__ = "0.4.0"

__all__ = ["__version__"]
