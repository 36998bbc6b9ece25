"""Base collector abstract class.

所有 collector 的统一基类，提供标准化接口和注册机制。
All collectors inherit from BaseCollector and expose one capability:
collect(keywords) -> list[ContentItem].
"""

import logging
from abc import ABC, abstractmethod

from ..errors import AdapterError
from ..models import ContentItem

logger = logging.getLogger(__name__)


class BaseCollector(ABC):
    """Abstract base class for all source collectors.

    每个 collector 继承此基类，配置通过 __init__ 注入。
    统一接口：collect(keywords) -> list[ContentItem]。
    失败时抛出 AdapterError（或其子类 MissingCredentialError）。
    """

    name: str = ""  # registry key / provenance tag, e.g. "arxiv"
    display_name: str = ""  # human-readable source name, e.g. "arXiv"
    enabled: bool = True

    @abstractmethod
    def collect(self, keywords: list[str]) -> list[ContentItem]:
        """Collect content items from the source.

        Args:
            keywords: Keywords to search the source for.
                关键词列表，每个关键词单独查询。

        Returns:
            List of collected ContentItem (possibly empty).
        """
        ...

    def _raise_if_all_failed(
        self,
        items: list[ContentItem],
        failures: list[Exception],
        attempts: int,
    ) -> None:
        """Raise AdapterError when every request failed and nothing was collected.

        部分关键词失败只记录日志；全部失败时才向上抛出，以区分"失败"与"无结果"。
        """
        if items or not failures or len(failures) < attempts:
            return
        last = failures[-1]
        raise AdapterError(
            f"{self.display_name or self.name}: all {attempts} requests failed ({last})",
            cause=last,
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} enabled={self.enabled}>"
