"""
洗衣配送离散事件仿真
订单生成 → 取件 → 洗涤 → 烘干 → 折叠 → 配送，并输出运营与财务分析
"""

__version__ = "0.1.0"
