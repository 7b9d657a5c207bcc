from .apkg import package_bytes, staged_package, write_package

__all__ = ["package_bytes", "staged_package", "write_package"]
