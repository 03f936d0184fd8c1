"""能力查询接口。

对加载后的能力表提供只读查询：组合是否受支持、有哪些位置。
"""

from __future__ import annotations

from pathlib import Path

from capability_map.parser import CapabilityFormat, load_capability_map
from intent_resolution.models import CapabilityMap, Command, Location


class CapabilityRegistry:
    """能力注册表，构造后不可修改。"""

    def __init__(self, capability_map: CapabilityMap):
        self._map = capability_map

    @classmethod
    def from_path(
        cls,
        path: str | Path,
        *,
        fmt: CapabilityFormat = "auto",
        indent_width: int | None = None,
    ) -> "CapabilityRegistry":
        """从定义文件构造注册表，读取失败时抛出 ConfigError。"""
        return cls(load_capability_map(path, fmt=fmt, indent_width=indent_width))

    @property
    def capability_map(self) -> CapabilityMap:
        return self._map

    def supports(self, candidate: Command) -> bool:
        """位置、对象相同且动作类型相同的条目存在时返回 True。

        Args:
            candidate: 候选命令

        Returns:
            是否受支持，与动作的具体状态/档位无关
        """
        return any(entry.matches(candidate) for entry in self._map.commands)

    def locations(self) -> tuple[Location, ...]:
        """按首次出现顺序返回全部位置。"""
        return self._map.locations

    def capabilities_for(self, location: Location) -> list[Command]:
        """返回某位置下的全部能力条目。"""
        return [entry for entry in self._map.commands if entry.location == location]

    def __len__(self) -> int:
        return len(self._map)
