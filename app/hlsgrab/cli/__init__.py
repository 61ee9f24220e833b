"""
HLS Grab CLI Module
命令行接口模块
"""

from .cli import HLSGrabCLI, main

__all__ = ["HLSGrabCLI", "main"]
