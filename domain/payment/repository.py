"""
支付记录仓储接口 - 定义支付记录数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from .entity import PaymentRecord


class PaymentRecordRepository(ABC):
    """支付记录仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def upsert(self, record: PaymentRecord) -> PaymentRecord:
        """合并写入并返回合并后的记录；写入失败必须抛出异常"""

    @abstractmethod
    async def insert_if_absent(self, record: PaymentRecord) -> Optional[PaymentRecord]:
        """仅在记录不存在时写入；已存在则不做修改并返回 None"""

    @abstractmethod
    async def get(self, external_reference: str) -> Optional[PaymentRecord]:
        """按 external_reference 获取；不存在返回 None，读取失败抛出异常"""

    @abstractmethod
    async def list_all(self) -> List[PaymentRecord]:
        """全部记录，按 date_last_updated 倒序"""

    @abstractmethod
    async def list_invalid(self) -> List[dict[str, Any]]:
        """无法解析的记录槽位（供管理端人工修复）"""

    @abstractmethod
    async def delete(self, external_reference: str) -> bool:
        """删除记录，不存在时返回 False"""

    @abstractmethod
    async def clear(self) -> int:
        """删除全部记录，返回删除数量"""

    @abstractmethod
    async def aggregate_stats(self) -> dict[str, Any]:
        """全量统计：数量、按状态/支付方式计数、总金额"""
