# -*- coding: utf-8 -*-
"""
Created on Mon Oct 13 10:40:05 2025

@author: aless
"""

# - Error taxonomy of the flow diagram engine and the error-reporting collaborator.
# - Nothing here is used for control flow: reports are operator diagnostics only.

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

logger = logging.getLogger("pipeline")


class FlowDiagramError(Exception):
    """Base class for engine errors."""

    def __str__(self):
        # KeyError subclasses would quote the message otherwise
        return str(self.args[0]) if self.args else ""


class MissingSelectionData(FlowDiagramError, KeyError):
    """No scenario index for a (scenario, year) pair."""


class DanglingNodeReference(FlowDiagramError, KeyError):
    """A link points to a node id that is not in the dataset."""

    def __init__(self, message: str, missing_ids=()):
        super().__init__(message)
        self.missing_ids = sorted(set(missing_ids))


class MalformedPayload(FlowDiagramError, ValueError):
    """Raw input that cannot be parsed into tables."""


class UnknownLegendCategory(FlowDiagramError, KeyError):
    """Carrier category without a legend colour."""


class InstanceResolutionFailure(FlowDiagramError, RuntimeError):
    """Any failure while resolving or rendering one diagram instance."""

    def __init__(self, instance_id: str, cause: BaseException):
        super().__init__(f"Instance '{instance_id}' failed: {cause}")
        self.instance_id = instance_id
        self.cause = cause


@dataclass(frozen=True)
class ErrorReport:
    title: str
    message: str
    error: Optional[BaseException] = None
    context: Dict[str, object] = field(default_factory=dict)


ReportFn = Callable[..., None]


class ErrorReporter:
    """Collects operator-visible diagnostics and logs them on the pipeline logger."""

    def __init__(self, sink: Optional[ReportFn] = None):
        self.reports: List[ErrorReport] = []
        self._sink = sink

    def report_error(self, title: str, message: str, error: Optional[BaseException] = None,
                     context: Optional[dict] = None):
        report = ErrorReport(title=title, message=message, error=error, context=dict(context or {}))
        self.reports.append(report)
        logger.error(f"[report_error] {title}: {message} ({error!r}) context={report.context}")
        if self._sink is not None:
            self._sink(title=title, message=message, error=error, context=report.context)

    def clear(self):
        self.reports.clear()

    def __len__(self):
        return len(self.reports)
