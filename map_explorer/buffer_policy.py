"""
Buffer radius policy.

Slow movement is drawn with a wide brush, fast movement with a narrow one:
at walking pace you see much of your surroundings, from a train very little.
"""
import math

DEFAULT_BUFFER_METERS = 15.0
MIN_BUFFER_METERS = 3.0

# (upper speed bound in km/h, radius in meters)
SPEED_BUCKETS = [
    (6.0, 40.0),     # walk / stopped
    (25.0, 28.0),    # bike
    (70.0, 18.0),    # road
    (130.0, 12.0),   # highway
]
FASTEST_BUFFER_METERS = 8.0  # train / very fast


def buffer_radius_for_speed(speed_mps: float) -> float:
    """
    Map a measured speed to a bucketed buffer radius.

    Args:
        speed_mps: Speed in meters per second; non-finite or negative values
            are treated as standing still

    Returns:
        Buffer radius in meters (never below MIN_BUFFER_METERS)
    """
    if speed_mps is None or not math.isfinite(speed_mps) or speed_mps < 0:
        speed_mps = 0.0
    kmh = speed_mps * 3.6

    radius = FASTEST_BUFFER_METERS
    for upper_kmh, bucket_radius in SPEED_BUCKETS:
        if kmh < upper_kmh:
            radius = bucket_radius
            break

    return max(MIN_BUFFER_METERS, radius)
