"""Geo Index -- 基于 haversine 的半径筛选

纯函数，无副作用；作用于已经取回的候选任务集合，不依赖数据库地理索引。
"""

import math
from collections.abc import Iterable

from .config import EARTH_RADIUS_KM
from .exceptions import ValidationFailedError
from .models.task import VolunteerTask


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """两点间大圆距离（公里）"""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lng / 2) ** 2
    )
    # 近对跖点处浮点误差可能让 a 略大于 1
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def within_radius(
    tasks: Iterable[VolunteerTask],
    origin_lat: float,
    origin_lng: float,
    radius_km: float,
) -> list[VolunteerTask]:
    """筛选距离原点 radius_km 以内的任务

    缺少经纬度的任务直接排除，不报错。

    Args:
        tasks: 候选任务
        origin_lat: 原点纬度
        origin_lng: 原点经度
        radius_km: 半径（公里），必须 >= 0

    Returns:
        保持输入顺序的任务列表
    """
    if radius_km < 0:
        raise ValidationFailedError(f"radius_km must be >= 0, got {radius_km}")

    result: list[VolunteerTask] = []
    for task in tasks:
        location = task.location
        if location.latitude is None or location.longitude is None:
            continue
        distance = haversine_km(
            origin_lat, origin_lng, location.latitude, location.longitude
        )
        if distance <= radius_km:
            result.append(task)
    return result
