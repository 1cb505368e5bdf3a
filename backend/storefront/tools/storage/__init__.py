from .block_storage import (
    BlockStorageConfigurationError,
    BlockStorageError,
    open_stored_file,
    save_stored_file,
)

__all__ = [
    "BlockStorageConfigurationError",
    "BlockStorageError",
    "open_stored_file",
    "save_stored_file",
]
