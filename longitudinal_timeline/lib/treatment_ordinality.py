#!/usr/bin/env python3
"""
Treatment Ordinality

Assigns treatment line numbers and treatment intent to the treatment courses
of a Canonical Record before their events are built.

Treatment ordinality includes:
  - Line number: chronological position of the course (1, 2, 3, ...)
  - Line label: "First-line", "Second-line", ...
  - Intent: palliative (stage IV / M1), curative (any other stage), unknown (no stage)

Usage:
    from longitudinal_timeline.lib.treatment_ordinality import TreatmentOrdinalityProcessor

    processor = TreatmentOrdinalityProcessor(course_start_dates)
    lines = processor.assign_all_ordinality()
    # lines[course_index] -> (line_number, line_label)
"""

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .clinical_vocabulary import stage_group

logger = logging.getLogger(__name__)


LINE_LABELS = {
    1: "First-line",
    2: "Second-line",
    3: "Third-line",
    4: "Fourth-line",
    5: "Fifth-line",
}

# Distant metastasis category in a TNM string ("T2N1M1", "cM1b"); not "M10"
DISTANT_METASTASIS_PATTERN = re.compile(r"(?<![A-Z])M1(?!\d)")


def line_label(line_number: int) -> str:
    return LINE_LABELS.get(line_number, f"Line {line_number}")


def infer_treatment_intent(stage: Optional[str]) -> str:
    """
    Infer treatment intent from the cancer stage.

    Returns:
        'palliative' for stage group IV or an M1 category, 'curative' for any other
        stage, 'unknown' when no stage is recorded
    """
    if not stage or not str(stage).strip():
        return 'unknown'
    if stage_group(stage) == 'IV' or DISTANT_METASTASIS_PATTERN.search(str(stage)):
        return 'palliative'
    return 'curative'


class TreatmentOrdinalityProcessor:
    """
    Orders treatment courses chronologically and numbers them as lines.

    Attributes:
        course_start_dates: Start date per course, in record order (None when unknown)
    """

    def __init__(self, course_start_dates: List[Optional[datetime]]):
        self.course_start_dates = course_start_dates

    def assign_all_ordinality(self) -> Dict[int, Tuple[int, str]]:
        """
        Assign line numbers to every course.

        Courses are ordered by start date with a stable sort, so equal dates
        keep record order. Courses with no start date follow dated courses in
        record order.

        Returns:
            Mapping course_index -> (line_number, line_label)
        """
        logger.debug(f"🔢 Assigning treatment lines to {len(self.course_start_dates)} courses")

        dated = [(i, d) for i, d in enumerate(self.course_start_dates) if d is not None]
        undated = [i for i, d in enumerate(self.course_start_dates) if d is None]
        ordered = [i for i, _ in sorted(dated, key=lambda item: item[1])] + undated

        lines = {}
        for position, course_index in enumerate(ordered, 1):
            lines[course_index] = (position, line_label(position))

        if undated:
            logger.debug(f"  📊 {len(undated)} courses had no start date and were numbered last")
        return lines
