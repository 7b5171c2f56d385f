"""
Locator Exporters
=================
Writes crawl results to disk:

- ``export_json``  : all pages + run stats in one file
- ``export_pages`` : one JSON artifact per page (``<pageName>.json``)
- ``export_csv``   : one row per locator, with the recommended strategy
- ``export_docx``  : Word report with a summary table and a section per page

Every locator is scored on the way out so each artifact carries the
recommended strategy and ready-to-use framework expressions.
"""

from __future__ import annotations

import csv
import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .models import CrawlStats, Locator, PageResult
from .scoring import recommend
from .strategies import expressions_for

logger = logging.getLogger(__name__)

CSV_FIELDS = [
    'page_name', 'page_url', 'depth', 'tag_name', 'description',
    'id', 'name', 'class', 'test_id', 'css_selector', 'xpath',
    'is_unique', 'is_interactive', 'strategy', 'confidence',
]

_UNSAFE_FILENAME_RE = re.compile(r'[^\w\-]+')


def locator_record(locator: Locator) -> Dict[str, Any]:
    """``Locator.to_dict()`` plus its recommendation and expressions."""
    rec = recommend(locator)
    data = locator.to_dict()
    data['recommendation'] = rec.to_dict()
    data['expressions'] = [e.to_dict() for e in expressions_for(locator, rec)]
    return data


def page_record(page: PageResult) -> Dict[str, Any]:
    data = page.to_dict()
    data['locators'] = [locator_record(loc) for loc in page.locators]
    return data


def safe_filename(name: str, fallback: str = "page") -> str:
    """Filesystem-safe stem derived from a page name."""
    stem = _UNSAFE_FILENAME_RE.sub('_', name or '').strip('_')[:80]
    return stem or fallback


def export_json(
    results: Sequence[PageResult],
    filepath: str,
    stats: Optional[CrawlStats] = None,
    start_url: Optional[str] = None,
) -> str:
    """
    Export all pages to a single JSON file.

    Returns:
        Absolute path to the created file
    """
    output_path = Path(filepath)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        'metadata': {
            'start_url': start_url,
            'generated_at': datetime.now().isoformat(timespec='seconds'),
            'total_pages': len(results),
            'total_locators': sum(len(p.locators) for p in results),
            'crawl_stats': stats.to_dict() if stats else None,
        },
        'pages': [page_record(p) for p in results],
    }

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    logger.info(f"[EXPORT] JSON written to {output_path.absolute()}")
    return str(output_path.absolute())


def export_pages(results: Sequence[PageResult], directory: str) -> List[str]:
    """
    Write one JSON artifact per page into *directory*.

    File names come from ``pageName``; collisions get a numeric suffix.

    Returns:
        Absolute paths of the created files, in page order
    """
    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)

    paths: List[str] = []
    used = set()
    for index, page in enumerate(results, start=1):
        stem = safe_filename(page.page_name, fallback=f"page_{index}")
        candidate, n = stem, 2
        while candidate in used:
            candidate = f"{stem}_{n}"
            n += 1
        used.add(candidate)

        path = out_dir / f"{candidate}.json"
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(page_record(page), f, indent=2, ensure_ascii=False)
        paths.append(str(path.absolute()))

    logger.info(f"[EXPORT] {len(paths)} page files written to {out_dir.absolute()}")
    return paths


def export_csv(results: Sequence[PageResult], filepath: str) -> str:
    """
    Export one row per locator.

    Returns:
        Absolute path to the created file
    """
    output_path = Path(filepath)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS, extrasaction='ignore')
        writer.writeheader()
        for page in results:
            for loc in page.locators:
                rec = recommend(loc)
                writer.writerow({
                    'page_name': page.page_name,
                    'page_url': page.page_url,
                    'depth': page.depth,
                    'tag_name': loc.tag_name,
                    'description': loc.description,
                    'id': loc.id or '',
                    'name': loc.name or '',
                    'class': loc.class_name or '',
                    'test_id': loc.test_id or '',
                    'css_selector': loc.css_selector,
                    'xpath': loc.xpath,
                    'is_unique': loc.is_unique,
                    'is_interactive': loc.is_interactive,
                    'strategy': rec.strategy,
                    'confidence': f"{rec.confidence:.3f}",
                })

    if not results:
        logger.warning("[EXPORT] No pages to export, CSV has a header only")
    logger.info(f"[EXPORT] CSV written to {output_path.absolute()}")
    return str(output_path.absolute())


def export_docx(
    results: Sequence[PageResult],
    filepath: str,
    stats: Optional[CrawlStats] = None,
    start_url: Optional[str] = None,
) -> str:
    """
    Export a Word report: cover summary, then one section per page with a
    locator table (description, recommended strategy, CSS, XPath).

    Returns:
        Absolute path to the created file
    """
    from docx import Document
    from docx.enum.table import WD_TABLE_ALIGNMENT
    from docx.enum.text import WD_ALIGN_PARAGRAPH
    from docx.shared import Pt, RGBColor

    output_path = Path(filepath)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    doc = Document()

    style = doc.styles["Normal"]
    style.font.name = "Calibri"
    style.font.size = Pt(10)
    style.paragraph_format.space_after = Pt(4)

    # ── Cover ──────────────────────────────────────────────────────
    title = doc.add_heading("Locator Report", level=0)
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER

    summary_items = [
        ("Start URL", start_url or (results[0].page_url if results else "N/A")),
        ("Pages", str(len(results))),
        ("Locators", str(sum(len(p.locators) for p in results))),
        ("Generated", datetime.now().strftime("%Y-%m-%d %H:%M")),
    ]
    if stats is not None:
        summary_items += [
            ("Pages Visited", str(stats.pages_visited)),
            ("Pages Failed", str(stats.pages_failed)),
            ("Session Restarts", str(stats.session_restarts)),
            ("Stop Reason", stats.stop_reason),
        ]

    summary_table = doc.add_table(rows=len(summary_items), cols=2)
    summary_table.alignment = WD_TABLE_ALIGNMENT.CENTER
    for i, (label, value) in enumerate(summary_items):
        row = summary_table.rows[i]
        _cell_text(row.cells[0], label, bold=True, size=Pt(10))
        _cell_text(row.cells[1], value, size=Pt(10))

    # ── Per-page sections ──────────────────────────────────────────
    for page in results:
        doc.add_page_break()
        doc.add_heading((page.page_name or page.page_url)[:120], level=1)

        url_para = doc.add_paragraph()
        url_run = url_para.add_run(page.page_url)
        url_run.font.color.rgb = RGBColor(0x25, 0x63, 0xEB)
        url_run.font.size = Pt(9)

        meta = doc.add_paragraph()
        meta_run = meta.add_run(f"Depth {page.depth} | {len(page.locators)} locators")
        meta_run.font.size = Pt(8)
        meta_run.font.color.rgb = RGBColor(0x6B, 0x72, 0x80)

        if page.error:
            doc.add_paragraph(f"Error: {page.error}")
        if page.locators:
            _render_locator_table(doc, page.locators)

    doc.save(str(output_path))
    logger.info(f"[EXPORT] DOCX written to {output_path.absolute()}")
    return str(output_path.absolute())


def _render_locator_table(doc, locators: Sequence[Locator]) -> None:
    from docx.shared import Pt

    headers = ["Element", "Strategy", "CSS Selector", "XPath"]
    table = doc.add_table(rows=1, cols=len(headers))
    table.style = "Table Grid"
    for i, header in enumerate(headers):
        _cell_text(table.rows[0].cells[i], header, bold=True, size=Pt(9))

    for loc in locators:
        rec = recommend(loc)
        cells = table.add_row().cells
        _cell_text(cells[0], loc.description or loc.tag_name, size=Pt(8))
        _cell_text(cells[1], f"{rec.strategy} ({rec.confidence:.2f})", size=Pt(8))
        _cell_text(cells[2], loc.css_selector, size=Pt(8))
        _cell_text(cells[3], loc.xpath, size=Pt(8))


def _cell_text(cell, text: str, bold: bool = False, size=None) -> None:
    """Set cell text with formatting."""
    cell.text = text
    for paragraph in cell.paragraphs:
        for run in paragraph.runs:
            run.bold = bold
            if size:
                run.font.size = size
