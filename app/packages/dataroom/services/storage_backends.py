"""Blob 存储后端：统一封装本地磁盘与 S3 的保存/读取/删除。

节点表只保存后端返回的不透明句柄（file_path）：
- LOCAL：相对上传根目录的路径 `<owner>/<dataroom>/<uuid><ext>`；
- S3：对象 key（含可选前缀）。
"""

from __future__ import annotations

import io
import os
import uuid
from functools import lru_cache
from pathlib import Path
from typing import Optional

from app.packages.dataroom.core.config import get_settings
from app.packages.dataroom.core.constants import DEFAULT_MIME_TYPE
from app.packages.dataroom.core.exceptions import StorageFailureError
from app.packages.dataroom.core.logger import logger


def _blob_name(filename: str) -> str:
    ext = os.path.splitext(os.path.basename(filename or ""))[1].lower()
    return f"{uuid.uuid4().hex}{ext}"


class StorageBackend:
    """存储后端接口。"""

    def save(
        self,
        content: bytes,
        *,
        owner_id: int,
        dataroom_id: str,
        filename: str,
        content_type: Optional[str] = None,
    ) -> str:
        raise NotImplementedError

    def read(self, handle: str) -> bytes:
        raise NotImplementedError

    def delete(self, handle: str) -> None:
        raise NotImplementedError


# ------------------------------------------
# 本地文件系统实现
# ------------------------------------------


class LocalBackend(StorageBackend):
    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:  # pragma: no cover - 极端情况下可能失败
            raise StorageFailureError(f"无法创建本地存储目录: {exc}") from exc

    # 统一的安全路径拼接，防止句柄越出存储根目录
    def _resolve(self, handle: str) -> Path:
        candidate = (self.root / handle.strip().lstrip("/")).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise StorageFailureError("非法文件句柄: 越权访问") from exc
        return candidate

    def save(self, content, *, owner_id, dataroom_id, filename, content_type=None) -> str:
        handle = f"{owner_id}/{dataroom_id}/{_blob_name(filename)}"
        target = self._resolve(handle)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as f:
                f.write(content)
        except OSError as exc:
            logger.exception("Local blob write failed for %s", handle)
            raise StorageFailureError("文件写入失败") from exc
        return handle

    def read(self, handle: str) -> bytes:
        target = self._resolve(handle)
        try:
            return target.read_bytes()
        except OSError as exc:
            raise StorageFailureError("文件读取失败") from exc

    def delete(self, handle: str) -> None:
        target = self._resolve(handle)
        try:
            target.unlink()
        except FileNotFoundError:
            # 允许幂等：不存在则忽略
            return
        except OSError as exc:
            raise StorageFailureError("文件删除失败") from exc


# ------------------------------------------
# S3 实现（boto3）
# ------------------------------------------


class S3Backend(StorageBackend):
    def __init__(
        self,
        *,
        bucket: str,
        region: str,
        access_key_id: str,
        secret_access_key: str,
        prefix: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ):
        try:
            import boto3  # type: ignore
        except ImportError as exc:
            raise StorageFailureError("S3 功能不可用：缺少依赖 boto3，请安装 s3 扩展后重试") from exc

        self.bucket = bucket
        self.prefix = (prefix or "").strip("/")
        self._client = boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            endpoint_url=endpoint_url or None,
        )

    def _join_key(self, rel: str) -> str:
        rel_norm = rel.lstrip("/")
        return f"{self.prefix}/{rel_norm}" if self.prefix else rel_norm

    def save(self, content, *, owner_id, dataroom_id, filename, content_type=None) -> str:
        key = self._join_key(f"{owner_id}/{dataroom_id}/{_blob_name(filename)}")
        try:
            self._client.upload_fileobj(
                io.BytesIO(content),
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type or DEFAULT_MIME_TYPE},
            )
        except Exception as exc:
            logger.exception("S3 upload failed for %s", key)
            raise StorageFailureError("文件写入失败") from exc
        return key

    def read(self, handle: str) -> bytes:
        try:
            resp = self._client.get_object(Bucket=self.bucket, Key=handle)
            return resp["Body"].read()
        except Exception as exc:
            raise StorageFailureError("文件读取失败") from exc

    def delete(self, handle: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=handle)
        except Exception as exc:
            raise StorageFailureError("文件删除失败") from exc


def build_backend(
    *,
    type: str,
    local_root_path: Optional[str | Path] = None,
    bucket_name: Optional[str] = None,
    region: Optional[str] = None,
    access_key_id: Optional[str] = None,
    secret_access_key: Optional[str] = None,
    path_prefix: Optional[str] = None,
    endpoint_url: Optional[str] = None,
) -> StorageBackend:
    t = (type or "").upper()
    if t == "LOCAL":
        if not local_root_path:
            raise StorageFailureError("缺少本地根目录配置")
        return LocalBackend(local_root_path)
    if t == "S3":
        if not (region and bucket_name and access_key_id and secret_access_key):
            raise StorageFailureError("S3 配置不完整")
        return S3Backend(
            bucket=bucket_name,
            region=region,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            prefix=path_prefix,
            endpoint_url=endpoint_url,
        )
    raise StorageFailureError(f"不支持的存储类型: {type}")


@lru_cache
def get_storage_backend() -> StorageBackend:
    """按配置构建单例存储后端（FastAPI 依赖，可在测试中覆盖）。"""
    settings = get_settings()
    return build_backend(
        type=settings.storage_type,
        local_root_path=settings.upload_directory,
        bucket_name=settings.s3_bucket_name,
        region=settings.s3_region,
        access_key_id=settings.s3_access_key_id,
        secret_access_key=settings.s3_secret_access_key,
        path_prefix=settings.s3_path_prefix,
        endpoint_url=settings.s3_endpoint_url,
    )
