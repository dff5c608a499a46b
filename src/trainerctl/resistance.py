"""
Grade-to-resistance mapping.

Trainers in resistance mode have no notion of slope, so a virtual grade is
converted to a resistance fraction through a fixed calibration table. The
table is non-decreasing: a downhill is never harder than the flat.
"""

from bisect import bisect_right

# (grade %, resistance fraction) anchors, sorted by grade
GRADE_RESISTANCE_TABLE = (
    (-10.0, 0.000),
    (0.0, 0.005),
    (2.0, 0.030),
    (5.0, 0.090),
    (8.0, 0.150),
    (12.0, 0.220),
    (15.0, 0.280),
    (20.0, 0.300),
)

_GRADES = [grade for grade, _ in GRADE_RESISTANCE_TABLE]


def grade_to_resistance(grade_percent: float) -> float:
    """Map a grade to a resistance fraction in [0, 1].

    Grades outside the table hold the nearest end value; anything in between
    is linearly interpolated within its bracketing segment.
    """
    first_grade, first_resistance = GRADE_RESISTANCE_TABLE[0]
    last_grade, last_resistance = GRADE_RESISTANCE_TABLE[-1]

    if grade_percent <= first_grade:
        return first_resistance
    if grade_percent >= last_grade:
        return last_resistance

    index = bisect_right(_GRADES, grade_percent)
    low_grade, low_resistance = GRADE_RESISTANCE_TABLE[index - 1]
    high_grade, high_resistance = GRADE_RESISTANCE_TABLE[index]

    ratio = (grade_percent - low_grade) / (high_grade - low_grade)
    resistance = low_resistance + ratio * (high_resistance - low_resistance)
    return max(0.0, min(resistance, 1.0))
