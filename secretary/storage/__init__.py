"""Storage backend"""
from .vault import ListResult, LocalVault, Vault, join_path, normalize_path

__all__ = ["ListResult", "LocalVault", "Vault", "join_path", "normalize_path"]
