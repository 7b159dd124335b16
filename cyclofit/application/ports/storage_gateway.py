from typing import Protocol


class StorageGateway(Protocol):
    """Key-addressed object store. Keys are written once and never overwritten."""

    def put(self, key: str, data: bytes, content_type: str) -> None:
        ...

    def sign_url(self, key: str, expires_in: int) -> str:
        ...

    def get(self, key: str) -> bytes:
        ...

    def delete(self, key: str) -> None:
        ...
