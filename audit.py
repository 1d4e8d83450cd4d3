#!/usr/bin/env python3
"""
Website UX Audit Tool

Audits the UX/UI of a web page, or of an uploaded screenshot, by combining
automated page metrics with a vision model's review of the screenshots.

Usage:
    python audit.py --url example.com [--verbose] [--no-sections]
    python audit.py --image path/to/screenshot.png [--output report.json]
"""

import argparse
import json
import sys
import asyncio
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from utils.config import AuditSettings, load_env_file

# Load .env file if present
load_env_file()

from orchestrator.pipeline import AuditPipeline, pending_tasks
from orchestrator.report_store import AuditReport, SQLiteReportStore, Stage, Target
from utils.browser import get_browser_manager
from utils.errors import AuditError

POLL_INTERVAL = 2.0


async def run_audit(target: Target, settings: AuditSettings) -> AuditReport:
    """
    Start an audit and poll the store until the report is completed.

    Args:
        target: URL or image target
        settings: Runtime settings

    Returns:
        The completed AuditReport
    """
    store = SQLiteReportStore(settings.database_path)
    pipeline = AuditPipeline(store, settings)
    try:
        report_id, report = await pipeline.start(target)
        print(f"Report id: {report_id}")

        last_status = None
        while True:
            report = store.load(report_id)
            status = (report.status.stage, report.status.message)
            if status != last_status:
                print(f"  [{report.status.progress:3d}%] {report.status.stage.value}: {report.status.message}")
                last_status = status
            if report.status.stage == Stage.COMPLETED:
                break
            await asyncio.sleep(POLL_INTERVAL)

        # The task writes `completed` last, let it unwind
        await asyncio.gather(*pending_tasks())
        return report
    finally:
        await get_browser_manager().shutdown()


def print_summary(report: AuditReport):
    print(f"\n{'='*60}")
    print(f"  AUDIT COMPLETE")
    print(f"{'='*60}")

    if report.error:
        print(f"\nNote: {report.error}")

    if report.category_scores:
        print(f"\nCategory Scores:")
        for name, score in report.category_scores.items():
            print(f"  - {name}: {score}")

    analysis = report.analysis
    if analysis is None:
        return
    print(f"\nAI score: {analysis.overall_score} ({analysis.provider or 'no provider'})")
    if analysis.visual_description:
        print(f"\n{analysis.visual_description[:500]}")

    if analysis.issues:
        print(f"\nIssues ({len(analysis.issues)}):")
        for i, issue in enumerate(analysis.issues[:10], 1):
            section = f"[{issue.section}] " if issue.section else ""
            print(f"  {i}. {section}{issue.text[:100]}")

    if analysis.suggestions:
        print(f"\nSuggestions ({len(analysis.suggestions)}):")
        for i, suggestion in enumerate(analysis.suggestions[:10], 1):
            print(f"  {i}. {suggestion.title[:100]}")


def main():
    parser = argparse.ArgumentParser(
        description='Website UX Audit Tool - page metrics plus vision model review'
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument('--url', '-u', help='Page to audit')
    source.add_argument('--image', '-i', help='Screenshot file to audit instead of a URL')

    parser.add_argument('--output', '-o', help='Write the final report JSON to this file')
    parser.add_argument('--db', help='SQLite database path (default: DATABASE_PATH or ./reports.db)')
    parser.add_argument('--no-sections', action='store_true',
                        help='Analyze the full screenshot once instead of header/main/footer')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')

    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    settings = AuditSettings.from_env()
    if args.db:
        settings.database_path = args.db
    if args.no_sections:
        settings.section_analysis = False

    print("\n" + "="*60)
    print("  WEBSITE UX AUDIT")
    print("="*60 + "\n")

    try:
        if args.url:
            target = Target.from_url(args.url)
            print(f"Website: {target.url}")
        else:
            image_path = Path(args.image)
            if not image_path.exists():
                print(f"Error: Image not found: {image_path}")
                sys.exit(1)
            target = Target.from_image(image_path.read_bytes())
            print(f"Image: {image_path} ({target.mime_type})")

        report = asyncio.run(run_audit(target, settings))
    except AuditError as e:
        print(f"Error: {e}")
        print(f"Hint: {e.remediation}")
        sys.exit(1)

    print_summary(report)

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(report.to_dict(), ensure_ascii=False, indent=2), encoding='utf-8')
        print(f"\nReport saved to: {output_path}")


if __name__ == "__main__":
    main()
