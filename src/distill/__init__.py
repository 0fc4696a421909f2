"""Distill - 代码仓库任务分析 Agent

由语言模型驱动的分析循环：模型通过只读能力（目录、文件、搜索、导入分析）
探索远程仓库，最终产出结构化的实现指导产物。
"""

__version__ = "0.1.0"
