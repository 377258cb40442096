"""
Renderers for validation reports, tables of contents and markdown guides.
"""

from sqlguide.renderers.base import BaseRenderer
from sqlguide.renderers.guide import GuideMarkdownRenderer
from sqlguide.renderers.report import JsonReportRenderer, ReportRenderer
from sqlguide.renderers.toc import TocRenderer

__all__ = [
    "BaseRenderer",
    "GuideMarkdownRenderer",
    "JsonReportRenderer",
    "ReportRenderer",
    "TocRenderer",
]
