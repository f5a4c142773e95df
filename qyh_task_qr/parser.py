"""
任务 JSON 解析器 (Task Parser)

将任务 JSON 解析为行为树结构:
- 复合节点: Sequence / Parallel / Selector / Loop
- QR 装饰节点: TaskLevelQR / SystemLevelQR 及具体类型
- 技能节点: SKILL_REGISTRY 中注册的叶子节点
- 子树: SubTree 节点按 params.template 展开任务模板
"""

import copy
import json
import uuid
from typing import Any, Dict, List, Tuple, Type, Union, TYPE_CHECKING

from .base_node import TreeNode
from .composite_nodes import SequenceNode, ParallelNode, SelectorNode, LoopNode, CompositeNode
from .errors import TaskParseError
from .ports import convert_value
from .preset_loader import PresetLoader, preset_loader
from .qr_kinds import QR_REGISTRY
from .qr_node import QRNode, QualityAttribute
from .skills import SKILL_REGISTRY

if TYPE_CHECKING:
    import rclpy.node


class TaskParser:
    """
    任务解析器

    将 JSON 格式的任务描述解析为可执行的行为树
    """

    # 复合节点类型映射
    COMPOSITE_TYPES = {
        'Sequence': SequenceNode,
        'Parallel': ParallelNode,
        'Selector': SelectorNode,
        'Loop': LoopNode,
    }

    # 复合节点的额外构造参数
    COMPOSITE_EXTRA_PARAMS = {
        'Parallel': {'success_threshold': int, 'failure_threshold': int},
        'Loop': {'count': int, 'break_on_failure': bool},
    }

    SUBTREE_TYPE = 'SubTree'

    def __init__(self, ros_node: 'rclpy.node.Node' = None, presets: PresetLoader = None):
        """
        初始化解析器

        Args:
            ros_node: ROS2 节点引用，传递给所有节点（用于日志）
            presets: 预设加载器，默认使用全局单例
        """
        self.ros_node = ros_node
        self.presets = presets if presets is not None else preset_loader
        self.blackboard: Dict[str, Any] = {}

    def parse(self, task_json: Union[str, dict]) -> TreeNode:
        """
        解析任务 JSON

        Args:
            task_json: JSON 字符串或字典

        Returns:
            根节点

        Raises:
            TaskParseError: JSON 格式错误或节点类型未知
        """
        task_data = self._load(task_json)

        if 'root' not in task_data:
            raise TaskParseError("Missing 'root' in task JSON")

        # 每个任务使用新的黑板
        self.blackboard = copy.deepcopy(task_data.get('blackboard', {}))
        root = self._parse_node(task_data['root'], path='root', templates=())
        root.attach_blackboard(self.blackboard)
        return root

    @staticmethod
    def _load(task_json: Union[str, dict]) -> dict:
        if isinstance(task_json, str):
            try:
                task_data = json.loads(task_json)
            except json.JSONDecodeError as e:
                raise TaskParseError(f"Invalid JSON: {e}") from e
        else:
            task_data = task_json
        if not isinstance(task_data, dict):
            raise TaskParseError("Task must be a JSON object")
        return task_data

    def _parse_node(self, node_data: dict, path: str, templates: Tuple[str, ...], id_prefix: str = "") -> TreeNode:
        """
        递归解析单个节点

        Args:
            node_data: 节点数据字典
            path: 节点路径（用于错误信息）
            templates: 正在展开的模板（用于检测循环引用）
            id_prefix: 模板展开时的节点 ID 前缀，保证同一模板多次展开后 ID 不重复

        Returns:
            解析后的节点对象
        """
        if not isinstance(node_data, dict):
            raise TaskParseError(f"{path}: node must be an object")

        node_type = node_data.get('type')
        if not node_type:
            raise TaskParseError(f"{path}: missing 'type'")

        node_id = id_prefix + str(node_data.get('id', str(uuid.uuid4())[:8]))
        node_name = node_data.get('name', node_type)
        params = dict(node_data.get('params', {}))

        if node_type == self.SUBTREE_TYPE:
            return self._parse_subtree(params, node_id, path, templates)

        if node_type in self.COMPOSITE_TYPES:
            return self._parse_composite_node(node_data, node_type, node_id, node_name, params, path, templates, id_prefix)

        if node_type in QR_REGISTRY:
            return self._parse_qr_node(node_data, node_type, node_id, node_name, params, path, templates, id_prefix)

        if node_type in SKILL_REGISTRY:
            skill_class = SKILL_REGISTRY[node_type]
            try:
                return skill_class(
                    node_id=node_id,
                    params=params,
                    blackboard=self.blackboard,
                    ros_node=self.ros_node,
                    node_name=node_name
                )
            except (TypeError, ValueError) as e:
                raise TaskParseError(f"{path}: invalid params for '{node_type}': {e}") from e

        raise TaskParseError(f"{path}: unknown node type '{node_type}'")

    def _parse_composite_node(
        self,
        node_data: dict,
        node_type: str,
        node_id: str,
        node_name: str,
        params: dict,
        path: str,
        templates: Tuple[str, ...],
        id_prefix: str = ""
    ) -> CompositeNode:
        """解析复合节点"""
        composite_class = self.COMPOSITE_TYPES[node_type]

        # 额外参数（如 Parallel 的 success_threshold）
        extra_params = {}
        for name, param_type in self.COMPOSITE_EXTRA_PARAMS.get(node_type, {}).items():
            if name not in params:
                continue
            try:
                extra_params[name] = convert_value(params[name], param_type)
            except ValueError as e:
                raise TaskParseError(f"{path}: invalid param '{name}' for '{node_type}': {e}") from e

        composite_node = composite_class(
            node_id=node_id,
            node_name=node_name,
            blackboard=self.blackboard,
            ros_node=self.ros_node,
            params=params,
            **extra_params
        )

        children_data = node_data.get('children', [])
        if not isinstance(children_data, list):
            raise TaskParseError(f"{path}: 'children' must be an array")
        for i, child_data in enumerate(children_data):
            composite_node.add_child(self._parse_node(child_data, f"{path}.children[{i}]", templates, id_prefix))

        return composite_node

    def _parse_qr_node(
        self,
        node_data: dict,
        node_type: str,
        node_id: str,
        node_name: str,
        params: dict,
        path: str,
        templates: Tuple[str, ...],
        id_prefix: str = ""
    ) -> TreeNode:
        """解析 QR 装饰节点"""
        qr_class = QR_REGISTRY[node_type]

        if 'quality_attribute' not in params:
            raise TaskParseError(f"{path}: missing required param 'quality_attribute'")
        try:
            quality_attribute = QualityAttribute.parse(params['quality_attribute'])
        except ValueError as e:
            raise TaskParseError(f"{path}: {e}") from e

        # 权重预设
        if 'weight_preset' in params:
            preset_name = params.pop('weight_preset')
            weight = self.presets.get_weight(preset_name)
            if weight is None:
                raise TaskParseError(f"{path}: unknown weight preset '{preset_name}'")
            params['weight'] = weight

        for param_name, param_def in qr_class.PARAM_SCHEMA.items():
            if param_def.get('required', False) and param_name not in params:
                raise TaskParseError(f"{path}: missing required param '{param_name}'")

        child_data = self._decorator_child(node_data, path)

        try:
            qr_node = qr_class(
                node_id=node_id,
                quality_attribute=quality_attribute,
                node_name=node_name,
                blackboard=self.blackboard,
                ros_node=self.ros_node,
                params=params
            )
        except ValueError as e:
            raise TaskParseError(f"{path}: invalid params for '{node_type}': {e}") from e

        qr_node.set_child(self._parse_node(child_data, f"{path}.child", templates, id_prefix))
        return qr_node

    @staticmethod
    def _decorator_child(node_data: dict, path: str) -> dict:
        """装饰节点的唯一子节点: 'child' 对象或只有一个元素的 'children' 数组"""
        if 'child' in node_data:
            return node_data['child']
        children = node_data.get('children')
        if isinstance(children, list) and len(children) == 1:
            return children[0]
        raise TaskParseError(f"{path}: decorator requires exactly one child")

    def _parse_subtree(self, params: dict, subtree_id: str, path: str, templates: Tuple[str, ...]) -> TreeNode:
        """
        展开任务模板

        模板内节点的 ID 加上 "<subtree_id>/" 前缀，同一模板展开多次时
        未重映射的输出端口不会互相覆盖。
        """
        template_name = params.get('template')
        if not template_name:
            raise TaskParseError(f"{path}: SubTree requires param 'template'")
        if template_name in templates:
            raise TaskParseError(f"{path}: recursive template '{template_name}'")

        template = self.presets.get_task_template(template_name)
        if template is None:
            raise TaskParseError(f"{path}: unknown task template '{template_name}'")
        tree_data = template.get('task_tree') or template.get('root')
        if tree_data is None:
            raise TaskParseError(f"{path}: task template '{template_name}' has no root")

        return self._parse_node(
            tree_data, f"{path}<{template_name}>", templates + (template_name,), f"{subtree_id}/"
        )

    def validate(self, task_json: Union[str, dict]) -> Tuple[bool, str]:
        """
        验证任务 JSON 的有效性

        Args:
            task_json: JSON 字符串或字典

        Returns:
            (is_valid, error_message)
        """
        try:
            task_data = self._load(task_json)
        except TaskParseError as e:
            return False, str(e)

        if 'root' not in task_data:
            return False, "Missing 'root' field"

        errors = self._validate_node(task_data['root'], path='root')
        if errors:
            return False, '; '.join(errors)
        return True, ""

    def _validate_node(self, node_data: Any, path: str) -> List[str]:
        """递归验证节点"""
        errors = []

        if not isinstance(node_data, dict):
            errors.append(f"{path}: node must be an object")
            return errors

        node_type = node_data.get('type')
        if not node_type:
            errors.append(f"{path}: missing 'type'")
            return errors

        params = node_data.get('params', {})

        if node_type == self.SUBTREE_TYPE:
            template_name = params.get('template')
            if not template_name:
                errors.append(f"{path}: SubTree requires param 'template'")
            elif self.presets.get_task_template(template_name) is None:
                errors.append(f"{path}: unknown task template '{template_name}'")
            return errors

        if node_type in self.COMPOSITE_TYPES:
            children = node_data.get('children', [])
            if not isinstance(children, list):
                errors.append(f"{path}: 'children' must be an array")
            else:
                for i, child in enumerate(children):
                    errors.extend(self._validate_node(child, f"{path}.children[{i}]"))
            return errors

        if node_type in QR_REGISTRY:
            errors.extend(self._validate_qr_params(QR_REGISTRY[node_type], params, path))
            try:
                child = self._decorator_child(node_data, path)
            except TaskParseError as e:
                errors.append(str(e))
            else:
                errors.extend(self._validate_node(child, f"{path}.child"))
            return errors

        if node_type in SKILL_REGISTRY:
            skill_class = SKILL_REGISTRY[node_type]
            for param_name, param_def in skill_class.PARAM_SCHEMA.items():
                if param_def.get('required', False) and param_name not in params:
                    errors.append(f"{path}: missing required param '{param_name}'")
            return errors

        errors.append(f"{path}: unknown node type '{node_type}'")
        return errors

    def _validate_qr_params(self, qr_class: Type[QRNode], params: dict, path: str) -> List[str]:
        errors = []
        for param_name, param_def in qr_class.PARAM_SCHEMA.items():
            if param_name in ('quality_attribute', 'weight'):
                continue
            if param_def.get('required', False) and param_name not in params:
                errors.append(f"{path}: missing required param '{param_name}'")

        if 'quality_attribute' not in params:
            errors.append(f"{path}: missing required param 'quality_attribute'")
        else:
            try:
                QualityAttribute.parse(params['quality_attribute'])
            except ValueError as e:
                errors.append(f"{path}: {e}")

        if 'weight_preset' in params:
            if self.presets.get_weight(params['weight_preset']) is None:
                errors.append(f"{path}: unknown weight preset '{params['weight_preset']}'")
        elif 'weight' not in params:
            errors.append(f"{path}: missing required param 'weight'")
        return errors

    def get_available_nodes(self) -> List[Dict[str, Any]]:
        """
        获取所有可用的节点类型

        Returns:
            节点信息列表
        """
        nodes = []
        for name in self.COMPOSITE_TYPES:
            nodes.append({'type': name, 'category': 'composite', 'description': self.COMPOSITE_TYPES[name].__doc__ or '', 'params': {}})
        for name, qr_class in QR_REGISTRY.items():
            nodes.append({'type': name, 'category': 'qr', 'description': qr_class.__doc__ or '', 'params': qr_class.PARAM_SCHEMA})
        for name, skill_class in SKILL_REGISTRY.items():
            nodes.append({'type': name, 'category': 'skill', 'description': skill_class.__doc__ or '', 'params': skill_class.PARAM_SCHEMA})
        return nodes
