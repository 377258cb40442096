"""Anchor check: intra-document links and the table of contents."""

from __future__ import annotations

from urllib.parse import unquote

from sqlguide.checks.base import Check, Finding, Severity
from sqlguide.parser.anchors import slugify
from sqlguide.parser.models import Guide
from sqlguide.sequencer import SequencePlan


class AnchorCheck(Check):
    """Check ``[text](#anchor)`` links against heading anchors.

    - A link to an anchor no heading produces is an error
    - A numbered section missing from the TOC is a warning
    - TOC entries out of section order are a warning
    """

    name = "anchors"

    def run(self, guide: Guide, plan: SequencePlan) -> list[Finding]:
        findings = []
        anchors = {heading.anchor for heading in guide.headings}

        for link in guide.links:
            target = unquote(link.anchor)
            if target in anchors:
                continue
            message = f"Link [{link.text}](#{link.anchor}) does not match any heading"
            suggestion = slugify(link.text)
            if suggestion in anchors and suggestion != target:
                message += f" (did you mean #{suggestion}?)"
            findings.append(self.finding(Severity.ERROR, message, line=link.line))

        if not guide.has_toc:
            if guide.source_format == "markdown" and len(guide.sections) > 1:
                findings.append(self.finding(Severity.INFO, "Guide has no table of contents"))
            return findings

        toc_targets = [unquote(link.anchor) for link in guide.toc_links]
        for section in guide.sections:
            if section.anchor not in toc_targets:
                findings.append(self.finding(
                    Severity.WARNING,
                    f"Section {section.ordinal} ({section.title}) is missing from the table of contents",
                    section=section.ordinal,
                    line=section.line,
                ))

        findings.extend(self._check_order(guide, toc_targets))
        return findings

    def _check_order(self, guide: Guide, toc_targets: list[str]) -> list[Finding]:
        position = {section.anchor: index for index, section in enumerate(guide.sections)}
        listed = []
        for target in toc_targets:
            if target in position and target not in listed:
                listed.append(target)

        previous = -1
        for target, link in zip(listed, self._first_links(guide, listed)):
            if position[target] < previous:
                section = guide.sections[position[target]]
                return [self.finding(
                    Severity.WARNING,
                    f"Table of contents lists section {section.ordinal} ({section.title}) out of order",
                    section=section.ordinal,
                    line=link.line,
                )]
            previous = position[target]
        return []

    @staticmethod
    def _first_links(guide: Guide, targets: list[str]) -> list:
        links = []
        for target in targets:
            for link in guide.toc_links:
                if unquote(link.anchor) == target:
                    links.append(link)
                    break
        return links
