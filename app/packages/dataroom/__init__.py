"""数据室业务包：文件夹/文件树、上传、级联删除与分享访问。"""

from app.packages.types import AppPackage

from .api.v1 import api_router
from .core.config import get_settings
from .core.dependencies import ACCESS_TOKEN_HEADER
from .core.exceptions import generic_exception_handler, http_exception_handler
from .core.logger import logger, setup_logging
from .core.responses import create_response
from .db.init_db import init_db
from .services.storage_backends import get_storage_backend

package = AppPackage(
    name="dataroom",
    api_router=api_router,
    get_settings=get_settings,
    setup_logging=setup_logging,
    logger=logger,
    init_db=init_db,
    create_response=create_response,
    http_exception_handler=http_exception_handler,
    generic_exception_handler=generic_exception_handler,
    init_storage=get_storage_backend,
    exposed_headers=(ACCESS_TOKEN_HEADER, "X-Request-ID", "Content-Disposition"),
)

__all__ = ["package", "api_router", "get_settings"]
