from .constants import WAD


def wad_div(x: int, y: int) -> int:
    """x / y in 18-decimal fixed point, rounded half up."""
    return (x * WAD + y // 2) // y
