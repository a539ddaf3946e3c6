"""JSON 输出测试"""

import json

import numpy as np

from laundrysim.utils.json_utils import dump_json, to_json_safe


def test_non_finite_values_become_null():
    data = {'rate': float('nan'), 'orders': float('inf'), 'nested': [1.5, float('-inf'), {'x': np.float64('nan')}]}
    assert to_json_safe(data) == {'rate': None, 'orders': None, 'nested': [1.5, None, {'x': None}]}


def test_dump_json_is_standard(tmp_path):
    path = tmp_path / "stats.json"
    dump_json({'完成率': float('nan'), 'total': 3}, path)

    text = path.read_text(encoding='utf-8')
    assert 'NaN' not in text
    assert '完成率' in text
    assert json.loads(text) == {'完成率': None, 'total': 3}
