"""本地 Blob 存储。

上传的文件按不透明引用保存在 storage_root/blobs 下，
get_url 返回带过期时间与 HMAC 签名的访问地址，供多模态后端拉取图片。
"""

import hashlib
import hmac
import json
import re
import time
from pathlib import Path
from typing import Optional
from uuid import uuid4

from assist_core.config.settings import settings
from assist_core.domain.conversation import BlobStore
from assist_core.domain.exceptions import BusinessError

_STORAGE_ID_RE = re.compile(r"^b-[0-9a-f]{32}$")


class LocalBlobStore(BlobStore):
    def __init__(self, root: str | Path | None = None, cfg=settings):
        self._settings = cfg
        self._root = Path(root or cfg.storage_root).resolve() / "blobs"
        self._root.mkdir(parents=True, exist_ok=True)

    def upload(self, data: bytes, content_type: str) -> str:
        storage_id = f"b-{uuid4().hex}"
        try:
            (self._root / storage_id).write_bytes(data)
            (self._root / f"{storage_id}.meta.json").write_text(
                json.dumps({"content_type": content_type, "size": len(data)}),
                encoding="utf-8",
            )
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))
        return storage_id

    def get_url(self, storage_id: str) -> Optional[str]:
        """返回限时访问地址；引用非法或文件不存在时返回 None。"""
        if not _STORAGE_ID_RE.match(storage_id or ""):
            return None
        if not (self._root / storage_id).exists():
            return None
        expires = int(time.time()) + int(self._settings.blob_url_ttl_seconds)
        signature = self.sign(storage_id, expires)
        base = self._settings.blob_public_base_url.rstrip("/")
        return f"{base}/{storage_id}?expires={expires}&sig={signature}"

    def sign(self, storage_id: str, expires: int) -> str:
        key = self._settings.blob_signing_key.encode("utf-8")
        return hmac.new(key, f"{storage_id}:{expires}".encode("utf-8"), hashlib.sha256).hexdigest()

    def verify(self, storage_id: str, expires: int, signature: str) -> bool:
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self.sign(storage_id, expires), signature)
