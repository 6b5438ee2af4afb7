"""业务包接口约定：主应用只通过 ``AppPackage`` 与具体业务交互。"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import Logger
from typing import Callable, Optional, Sequence

from fastapi import APIRouter


@dataclass(frozen=True)
class AppPackage:
    """一个可挂载到主应用的业务包。

    ``init_storage`` 在启动阶段调用一次，用于提前构建 blob 存储后端，
    配置错误会在服务启动时暴露，而不是等到第一次上传。
    """

    name: str
    api_router: APIRouter
    get_settings: Callable[[], object]
    setup_logging: Callable[[], None]
    logger: Logger
    init_db: Callable[[], None]
    create_response: Callable[..., dict]
    http_exception_handler: Callable[..., object]
    generic_exception_handler: Callable[..., object]
    init_storage: Optional[Callable[[], object]] = None
    # 需要暴露给浏览器跨域读取的响应头
    exposed_headers: Sequence[str] = field(default_factory=tuple)
