"""
错误类型 - 按处理方式划分
"""


class AgentError(Exception):
    """所有Agent错误的基类"""


class ConfigurationError(AgentError):
    """缺少凭据等配置问题，直接展示给用户，不重试"""


class TransportError(AgentError):
    """补全服务返回非成功状态或畸形响应"""


class ToolExecutionError(AgentError):
    """工具执行失败，会被转换成观察结果回传给模型"""


class ParseError(AgentError):
    """回复中的工具调用无法解析，只记录日志"""


class RequestCancelled(AgentError):
    """当前周期被 stop() 取消"""
