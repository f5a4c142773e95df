"""
预设加载器 (Preset Loader)

从持久化存储加载 QR 权重预设和任务模板
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional


logger = logging.getLogger(__name__)

PRESET_DIR_ENV = "QYH_QR_PRESET_DIR"


class PresetLoader:
    """
    预设加载器

    默认从 $QYH_QR_PRESET_DIR 或 ~/qyh_jushen_ws/persistent/qr_preset/ 加载，
    每个条目同时按 id 和 name 索引。
    """

    FILE_MAP = {
        "qr_weight": "qr_weights.json",
        "task_template": "task_templates.json",
    }

    # 不同文件的数据字段名（默认为 items）
    DATA_FIELD_MAP = {
        "task_template": "templates",
    }

    BUILTIN_WEIGHTS = {
        "weight_low": 0.25,
        "weight_normal": 1.0,
        "weight_high": 2.0,
        "weight_critical": 5.0,
    }

    def __init__(self, storage_path: str = None):
        if storage_path is None:
            storage_path = os.environ.get(PRESET_DIR_ENV)
        if storage_path is None:
            storage_path = Path.home() / "qyh_jushen_ws" / "persistent" / "qr_preset"

        self.storage_path = Path(storage_path)
        self._cache: Dict[str, Dict[str, Any]] = {}
        self._load_all()
        self._add_builtin_presets()

    def _load_all(self):
        """加载所有预设文件"""
        for preset_type, filename in self.FILE_MAP.items():
            self._cache[preset_type] = {}
            filepath = self.storage_path / filename
            if not filepath.exists():
                continue
            try:
                with open(filepath, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Failed to load preset file [%s]: %s", filepath, e)
                continue

            data_field = self.DATA_FIELD_MAP.get(preset_type, 'items')
            items = data.get(data_field, data.get('items', [])) if isinstance(data, dict) else []

            for item in items:
                item_id = item.get('id')
                if not item_id:
                    continue
                self._cache[preset_type][item_id] = item
                # 同时用名称作为索引
                name = item.get('name')
                if name:
                    self._cache[preset_type][name] = item
            logger.info("Loaded preset file [%s]: %d items", filename, len(items))

    def _add_builtin_presets(self):
        """添加内置预设（只在文件中没有时才添加）"""
        weights = self._cache.setdefault("qr_weight", {})
        for preset_id, weight in self.BUILTIN_WEIGHTS.items():
            if preset_id not in weights:
                weights[preset_id] = {"id": preset_id, "name": preset_id, "weight": weight}

    def reload(self):
        """重新加载所有预设"""
        self._cache.clear()
        self._load_all()
        self._add_builtin_presets()

    def get_weight(self, name_or_id: str) -> Optional[float]:
        """获取权重预设"""
        preset = self._cache.get("qr_weight", {}).get(name_or_id)
        if preset is None or 'weight' not in preset:
            return None
        return float(preset['weight'])

    def get_task_template(self, name_or_id: str) -> Optional[Dict[str, Any]]:
        """获取任务模板预设"""
        return self._cache.get("task_template", {}).get(name_or_id)

    def list_presets(self, preset_type: str) -> List[Dict[str, Any]]:
        """列出指定类型的所有预设"""
        presets = self._cache.get(preset_type, {})
        # 去重（因为同时用 id 和 name 索引）
        seen_ids = set()
        result = []
        for preset in presets.values():
            preset_id = preset.get("id")
            if preset_id and preset_id not in seen_ids:
                seen_ids.add(preset_id)
                result.append(preset)
        return result


# 全局单例
preset_loader = PresetLoader()
