from typing import BinaryIO, Optional


class StorageProvider:
    def upload(self, key: str, data: bytes | BinaryIO, content_type: str) -> None:
        raise NotImplementedError

    def get_public_url(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


def get_storage() -> StorageProvider:
    from .local_provider import LocalStorageProvider
    return LocalStorageProvider()
