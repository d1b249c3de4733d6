"""统一异常体系

所有致命错误继承 AutoRepoError，由 CLI 顶层统一输出并以非零状态退出。
可跳过的情况（如架构不匹配）不是异常，只记录 WARNING。
"""

from __future__ import annotations


class AutoRepoError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(AutoRepoError):
    """配置缺失或无效：缺字段、recipe 无法解析、构建账户不存在等，不可重试"""

    code = "CONFIG_ERROR"


class ExternalToolError(AutoRepoError):
    """外部工具以非零状态退出（makepkg / pacman / gpg / bsdtar / repo-add ...）"""

    code = "EXTERNAL_TOOL_ERROR"

    def __init__(self, tool: str, message: str, returncode: int | None = None) -> None:
        super().__init__(f"{tool}: {message}")
        self.tool = tool
        self.returncode = returncode


class InstallConflictError(ExternalToolError):
    """本地包安装失败（通常是已安装包的版本冲突），允许删除冲突包后重试一次"""

    code = "INSTALL_CONFLICT"


class IntegrityError(AutoRepoError):
    """构建产物缺失或未通过检查脚本

    抛出前产物已被删除，下次运行会重新构建。
    """

    code = "INTEGRITY_ERROR"

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path
