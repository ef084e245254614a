"""项目内使用的自定义异常定义。"""


class AvifOptimizerError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(AvifOptimizerError):
    """配置不合法时抛出。"""


class DecodeError(AvifOptimizerError):
    """输入字节无法解析为图像（位图或矢量）。"""


class EncodeError(AvifOptimizerError):
    """AVIF 编码器调用失败。"""


class ProcessingTimeoutError(AvifOptimizerError, TimeoutError):
    """请求模式下超出处理时间预算。"""


class SizeLimitError(AvifOptimizerError):
    """请求体超过配置的大小上限。"""


class ArchiveWriteError(AvifOptimizerError):
    """打包下载文件失败。"""
