"""数据准备模块"""

from .travel_estimator import TravelEstimator, RouteStop, RouteMetrics, build_cluster_routes
from .demand_generator import DemandGenerator, apply_randomization_effects, generate_orders

__all__ = [
    'TravelEstimator',
    'RouteStop',
    'RouteMetrics',
    'build_cluster_routes',
    'DemandGenerator',
    'apply_randomization_effects',
    'generate_orders'
]
