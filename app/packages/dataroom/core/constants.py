"""常量定义：集中维护状态码、节点约束与上传限制等固定值。"""

HTTP_STATUS_OK = 200
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_CONFLICT = 409
HTTP_STATUS_PAYLOAD_TOO_LARGE = 413
HTTP_STATUS_BAD_GATEWAY = 502

ACCESS_TOKEN_TYPE = "bearer"

# 虚拟根节点：不入库，仅用于让面包屑/路径算法面对统一的单根树
VIRTUAL_ROOT_ID = "root"
DEFAULT_DATAROOM_NAME = "Data Room"

# 单文件上传上限 5 MiB，仅在上传时校验，不随文件持久化
MAX_FILE_SIZE = 5 * 1024 * 1024
MAX_FILE_SIZE_LABEL = "5MB"

MAX_NODE_NAME_LENGTH = 255
DEFAULT_MIME_TYPE = "application/octet-stream"
