"""Item definition catalog with an embedded fallback table."""

from __future__ import annotations

import logging
from typing import Callable, Final, Sequence

from earthlord.backend import BackendError
from earthlord.models import ItemCategory, ItemDefinition, ItemRarity

logger = logging.getLogger(__name__)


def _item(
    item_id: str, name: str, description: str, category: ItemCategory, icon: str, rarity: ItemRarity
) -> ItemDefinition:
    return ItemDefinition(
        id=item_id,
        name=name,
        description=description,
        category=category,
        icon=icon,
        rarity=rarity,
    )


# Used whenever the backend is unreachable or returns nothing.
FALLBACK_DEFINITIONS: Final[tuple[ItemDefinition, ...]] = (
    _item("water_bottle", "纯净水", "一瓶还算干净的水", ItemCategory.WATER, "drop.fill", ItemRarity.COMMON),
    _item("canned_beans", "罐头豆子", "高蛋白食物", ItemCategory.FOOD, "takeoutbag.and.cup.and.straw.fill", ItemRarity.COMMON),
    _item("bandage", "绷带", "简单的止血工具", ItemCategory.MEDICAL, "bandage.fill", ItemRarity.COMMON),
    _item("scrap_metal", "废金属", "可用于制造", ItemCategory.MATERIAL, "gearshape.fill", ItemRarity.COMMON),
    _item("rope", "绳索", "多用途工具", ItemCategory.TOOL, "line.diagonal", ItemRarity.COMMON),
    _item("first_aid_kit", "急救包", "包含多种医疗用品", ItemCategory.MEDICAL, "cross.case.fill", ItemRarity.RARE),
    _item("flashlight", "手电筒", "黑暗中的光明", ItemCategory.TOOL, "flashlight.on.fill", ItemRarity.RARE),
    _item("canned_meat", "肉罐头", "珍贵的蛋白质来源", ItemCategory.FOOD, "fork.knife", ItemRarity.RARE),
    _item("antibiotics", "抗生素", "珍贵的药物", ItemCategory.MEDICAL, "pills.fill", ItemRarity.EPIC),
    _item("radio", "对讲机", "远距离通讯设备", ItemCategory.TOOL, "antenna.radiowaves.left.and.right", ItemRarity.EPIC),
)


class ItemCatalog:
    """Read-only item lookup grouped by rarity.

    The loader is called at most once per catalog instance. If it raises
    :class:`BackendError` or returns nothing, the embedded table is used.
    """

    def __init__(self, loader: Callable[[], Sequence[ItemDefinition]] | None = None) -> None:
        self._loader = loader
        self._by_rarity: dict[ItemRarity, list[ItemDefinition]] = {}
        self._loaded = False
        self._is_fallback = False

    @property
    def is_fallback(self) -> bool:
        self.preload()
        return self._is_fallback

    def preload(self) -> None:
        """Load definitions now (no-op if already loaded)."""

        if self._loaded:
            return

        definitions: Sequence[ItemDefinition] = ()
        if self._loader is not None:
            try:
                definitions = self._loader()
            except BackendError as exc:
                logger.warning("加载物品定义失败，使用备用数据：%s", exc)
                definitions = ()
        if definitions:
            logger.info("加载了 %s 个物品定义", len(definitions))
            self._is_fallback = False
        else:
            definitions = FALLBACK_DEFINITIONS
            self._is_fallback = True
            if self._loader is not None:
                logger.warning("没有可用的物品定义，使用备用数据（%s 个）", len(definitions))
            else:
                logger.info("使用备用物品数据（%s 个）", len(definitions))

        self._by_rarity = {rarity: [] for rarity in ItemRarity}
        for d in definitions:
            self._by_rarity[d.rarity].append(d)
        self._loaded = True

    def definitions_for(self, rarity: ItemRarity) -> list[ItemDefinition]:
        self.preload()
        return list(self._by_rarity.get(rarity, ()))

    def all_definitions(self) -> list[ItemDefinition]:
        self.preload()
        return [d for rarity in ItemRarity for d in self._by_rarity[rarity]]

    def get(self, item_id: str) -> ItemDefinition | None:
        for d in self.all_definitions():
            if d.id == item_id:
                return d
        return None
