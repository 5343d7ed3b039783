"""
小说数据存储服务
按小说标识保存人物表和已增强单元，JSON文件原子写入
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Set, Union

from config import get_processing_config
from models.character import CharacterMap, CharacterRecord
from utils import atomic_write_json, safe_read_json

logger = logging.getLogger(__name__)


class NovelStore:
    """小说数据存储"""

    def __init__(self, file_path: Optional[Union[str, Path]] = None):
        self.file_path = Path(file_path or get_processing_config().store_file)
        self._data: Optional[Dict[str, Any]] = None

    def load(self) -> Dict[str, Any]:
        """读取存储文件（只读一次，之后使用内存数据）"""
        if self._data is None:
            data = safe_read_json(self.file_path, default={"novels": {}})
            if not isinstance(data.get("novels"), dict):
                data = {"novels": {}}
            self._data = data
        return self._data

    def save(self) -> None:
        atomic_write_json(self.file_path, self.load())
        logger.debug(f"小说数据已保存: {self.file_path}")

    def _entry(self, novel_id: str) -> Dict[str, Any]:
        novels = self.load()["novels"]
        entry = novels.get(novel_id)
        if entry is None:
            entry = {"characters": {}, "enhanced_units": [], "last_updated": None}
            novels[novel_id] = entry
        return entry

    def get_character_map(self, novel_id: str) -> CharacterMap:
        entry = self.load()["novels"].get(novel_id) or {}
        character_map: CharacterMap = {}
        for name, data in (entry.get("characters") or {}).items():
            try:
                character_map[name] = CharacterRecord.from_dict({**data, "name": name})
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"忽略无效的人物记录 {name}: {e}")
        return character_map

    def merge_character_map(
        self, novel_id: str, character_map: CharacterMap, save: bool = True
    ) -> CharacterMap:
        """
        把本次会话的人物表合并进已保存的数据

        已保存记录只在新记录置信度严格更高时改变性别；置信度相同时合并证据；
        出现次数取最大值。

        Returns:
            CharacterMap: 合并后的完整人物表
        """
        if not novel_id:
            return dict(character_map)

        merged = self.get_character_map(novel_id)
        for name, record in character_map.items():
            existing = merged.get(name)
            if existing is None:
                merged[name] = CharacterRecord.from_dict(record.to_dict())
            else:
                existing.merge(record)

        entry = self._entry(novel_id)
        entry["characters"] = {name: record.to_dict() for name, record in merged.items()}
        entry["last_updated"] = datetime.now().isoformat()
        if save:
            self.save()
        logger.info(f"小说 {novel_id} 的人物表已更新，共 {len(merged)} 个人物")
        return merged

    def get_enhanced_units(self, novel_id: str) -> Set[int]:
        """
        已增强段落的序号，供调用方查询上次运行的进度

        会话只写入这份记录而不据此跳过段落：每次运行都重新读入原文，
        段落是否已增强由写回目标的 is_enhanced 判断。
        """
        entry = self.load()["novels"].get(novel_id) or {}
        return set(entry.get("enhanced_units") or [])

    def add_enhanced_units(self, novel_id: str, indices: Iterable[int], save: bool = True) -> None:
        if not novel_id:
            return
        entry = self._entry(novel_id)
        units = set(entry.get("enhanced_units") or [])
        units.update(indices)
        entry["enhanced_units"] = sorted(units)
        entry["last_updated"] = datetime.now().isoformat()
        if save:
            self.save()

    def clear(self, novel_id: Optional[str] = None) -> None:
        data = self.load()
        if novel_id is None:
            data["novels"] = {}
        else:
            data["novels"].pop(novel_id, None)
        self.save()
