"""autorepo - 无人值守的软件包构建与本地仓库维护工具"""

__version__ = "0.3.0"
