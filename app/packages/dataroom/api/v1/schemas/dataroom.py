"""数据室、节点与上传的请求/响应模型（字段与前端保持 camelCase）。"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.packages.dataroom.api.v1.schemas.common import ResponseEnvelope


class DataroomCreateBody(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)


class FolderCreateBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    dataroomId: str
    parentId: Optional[str] = None  # 为空或 "root" 表示顶层


class RenameBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class BulkDeleteBody(BaseModel):
    nodeIds: list[str] = Field(..., min_length=1)


class NodeOut(BaseModel):
    id: str
    name: str
    type: str
    parentId: Optional[str] = None
    dataroomId: str
    size: int = 0
    mimeType: Optional[str] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class DataroomOut(BaseModel):
    id: str
    name: str
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class UploadConflict(BaseModel):
    name: str
    type: str  # name / size / storage
    reason: str
    code: int
    size: Optional[int] = None
    existing: Optional[bool] = None
    suggestedName: Optional[str] = None


class UploadResult(BaseModel):
    uploaded: list[NodeOut]
    conflicts: list[UploadConflict]


class BulkDeleteResult(BaseModel):
    deletedCount: int


DataroomListResponse = ResponseEnvelope[list[DataroomOut]]
DataroomResponse = ResponseEnvelope[DataroomOut]
DataroomViewResponse = ResponseEnvelope[dict[str, Any]]
NodeResponse = ResponseEnvelope[NodeOut]
UploadResponse = ResponseEnvelope[UploadResult]
BulkDeleteResponse = ResponseEnvelope[BulkDeleteResult]
DeleteResponse = ResponseEnvelope[dict[str, Any]]
