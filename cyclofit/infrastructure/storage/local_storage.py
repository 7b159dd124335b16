import logging
import os
from urllib.parse import quote

from ...config import settings
from ...exceptions import NotFoundError, StorageFault
from ...utils import create_object_token
from ...application.ports.storage_gateway import StorageGateway

logger = logging.getLogger(__name__)


class LocalStorageGateway(StorageGateway):
    """Filesystem storage under UPLOAD_DIR. Signed URLs point at the app's /storage route."""

    def __init__(self, upload_dir: str = None, base_url: str = None) -> None:
        self.upload_dir = os.path.abspath(upload_dir or settings.UPLOAD_DIR)
        self.base_url = (base_url or settings.BASE_URL).rstrip("/")
        try:
            os.makedirs(self.upload_dir, exist_ok=True)
        except PermissionError:
            # Fallback to temp dir in restricted environments
            self.upload_dir = "/tmp/uploads"
            os.makedirs(self.upload_dir, exist_ok=True)

    def path_for(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.upload_dir, key))
        if os.path.commonpath([path, self.upload_dir]) != self.upload_dir:
            raise StorageFault(f"Storage key escapes upload directory: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self.path_for(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            # "xb" refuses to overwrite an existing key
            with open(path, "xb") as f:
                f.write(data)
        except FileExistsError as e:
            raise StorageFault(f"Object already exists: {key}") from e
        except OSError as e:
            raise StorageFault(f"Could not write {key}: {e}") from e
        logger.info(f"Stored {len(data)} bytes at {key} ({content_type})")

    def sign_url(self, key: str, expires_in: int) -> str:
        try:
            token = create_object_token(key, expires_in)
        except ValueError as e:
            raise StorageFault(f"Could not sign URL for {key}: {e}") from e
        return f"{self.base_url}/storage/{quote(key)}?token={token}"

    def get(self, key: str) -> bytes:
        path = self.path_for(key)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise NotFoundError(f"Object not found: {key}") from e
        except OSError as e:
            raise StorageFault(f"Could not read {key}: {e}") from e

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageFault(f"Could not delete {key}: {e}") from e
