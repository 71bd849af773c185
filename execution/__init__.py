from execution.oracle_registry import OracleRegistry, OracleRegistryError

__all__ = [
    "OracleRegistry",
    "OracleRegistryError",
]
