"""分享链接的请求/响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel

from app.packages.dataroom.api.v1.schemas.common import ResponseEnvelope


class ShareCreateBody(BaseModel):
    dataroomId: str
    folderId: Optional[str] = None  # 为空表示分享整个数据室


class ShareLinkOut(BaseModel):
    id: str
    token: str
    dataroomId: str
    sharedFolderId: Optional[str] = None
    shareUrl: str
    createdAt: Optional[str] = None


ShareLinkResponse = ResponseEnvelope[ShareLinkOut]
ShareLinkListResponse = ResponseEnvelope[list[ShareLinkOut]]
SharedViewResponse = ResponseEnvelope[dict[str, Any]]
RevokeResponse = ResponseEnvelope[dict[str, Any]]
