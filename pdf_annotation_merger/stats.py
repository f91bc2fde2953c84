"""Annotation statistics: counts per subtype, for a document or per page."""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List

from .document import AnnotatedDocument
from .extractor import extract_page_annotations

LOGGER = logging.getLogger("pdf_annotation_merger.stats")


@dataclass
class StatsReport:
    totals: Counter = field(default_factory=Counter)
    pages: List[Counter] = field(default_factory=list)
    per_page: bool = False

    @property
    def subtypes(self) -> List[str]:
        return sorted(self.totals)

    @property
    def is_empty(self) -> bool:
        return not self.totals

    def as_dict(self) -> Dict:
        data = {'totals': dict(sorted(self.totals.items()))}
        if self.per_page:
            data['pages'] = [dict(sorted(counter.items())) for counter in self.pages]
        return data


def collect_stats(document: AnnotatedDocument, per_page: bool = False) -> StatsReport:
    """Count the annotations of ``document`` by subtype, optionally per page."""
    report = StatsReport(per_page=per_page)
    for page in document.pages:
        counter = Counter(annotation.subtype
                          for annotation in extract_page_annotations(document, page.objgen))
        report.totals.update(counter)
        if per_page:
            report.pages.append(counter)

    LOGGER.debug("Summed counts for %d page(s) of %s", document.page_count, document.name)
    return report
