from typing import List, Sequence
import logging

from .. import config
from ..models import Cut, LENGTH_EPSILON, Pattern, RemainingPiece, RemnantKind, Roll

logger = logging.getLogger(__name__)


def calculate_waste(total_width: float, used_width: float) -> float:
    """Width left over on a roll, never negative."""
    return max(0, total_width - used_width)


def calculate_efficiency(used_area: float, total_area: float) -> float:
    """Used area as a percentage of total area, clamped to [0, 100]."""
    if total_area <= 0:
        return 0.0
    return min(100.0, max(0.0, (used_area / total_area) * 100))


def build_pattern(
    roll: Roll,
    cuts: Sequence[Cut],
    min_remainder_width: int = config.MIN_REMAINDER_WIDTH_MM,
    min_remainder_length: float = config.MIN_REMAINDER_LENGTH_M,
) -> Pattern:
    """
    Classify every unit of roll area into used area, re-stockable remainder or waste.

    Cuts are laid side by side starting at the roll head (y = 0):
    - the side strip beside the cuts, as long as the longest cut, is a remainder;
    - the end strip after the longest cut is a remainder when it is at least
      `min_remainder_width` wide and `min_remainder_length` long, otherwise waste;
    - the tail under each cut shorter than the longest one is waste.

    A roll without cuts is reported entirely as waste.

    Args:
        roll: The roll being cut
        cuts: Cuts placed on the roll
        min_remainder_width: Minimum width (mm) of a re-stockable end strip
        min_remainder_length: Minimum length (m) of a re-stockable end strip

    Returns:
        Pattern with waste, used area, remainders and efficiency filled in
    """
    cuts = list(cuts)
    roll_area = roll.area

    if not cuts:
        return Pattern(
            roll=roll,
            cuts=[],
            used_width=0,
            trim_width=roll.width,
            used_area=0.0,
            waste=roll_area,
            remaining_pieces=[],
            efficiency=0.0,
        )

    used_width = sum(cut.width for cut in cuts)
    max_length = max(cut.length for cut in cuts)
    used_area = sum(cut.area for cut in cuts)

    waste = 0.0
    pieces: List[RemainingPiece] = []

    for cut in cuts:
        tail = max_length - cut.length
        if tail > LENGTH_EPSILON:
            waste += cut.width * tail

    side_width = roll.width - used_width
    if side_width > 0:
        pieces.append(RemainingPiece(
            width=side_width,
            length=max_length,
            x=used_width,
            y=0.0,
            kind=RemnantKind.SIDE,
        ))

    end_length = roll.length - max_length
    if end_length > LENGTH_EPSILON:
        if roll.width >= min_remainder_width and end_length >= min_remainder_length:
            pieces.append(RemainingPiece(
                width=roll.width,
                length=end_length,
                x=0,
                y=max_length,
                kind=RemnantKind.END,
            ))
        else:
            waste += roll.width * end_length

    return Pattern(
        roll=roll,
        cuts=cuts,
        used_width=used_width,
        trim_width=calculate_waste(roll.width, used_width),
        used_area=used_area,
        waste=waste,
        remaining_pieces=pieces,
        efficiency=calculate_efficiency(used_area, roll_area),
    )


def closure_gap(pattern: Pattern) -> float:
    """Difference between the roll area and waste + used + remainder area (0 when closed)."""
    return pattern.roll.area - (pattern.waste + pattern.used_area + pattern.remainder_area)
