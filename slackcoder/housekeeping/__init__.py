"""
定时清理模块 - 周期性回收空闲会话、清理过期的去重记录。
"""

from slackcoder.housekeeping.service import HousekeepingService

__all__ = ["HousekeepingService"]
