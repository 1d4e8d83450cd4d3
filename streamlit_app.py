"""
Website UX Audit - Streamlit Application
Submit a URL or a screenshot, then poll the stored report until it completes.
"""

import asyncio
import concurrent.futures
import base64
import sys
import threading
import time
from pathlib import Path

import streamlit as st

# Ensure project root is on the path
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from utils.config import AuditSettings, load_env_file

load_env_file()

from orchestrator.pipeline import AuditPipeline
from orchestrator.report_store import SQLiteReportStore, Stage, Target
from utils.errors import AuditError

START_TIMEOUT = 300
POLL_SECONDS = 2

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------

st.set_page_config(
    page_title="Website UX Audit",
    page_icon="\U0001f50d",  # magnifying glass
    layout="wide",
)

# ---------------------------------------------------------------------------
# Long-lived event loop: the browser and background analysis tasks live here
# ---------------------------------------------------------------------------


@st.cache_resource
def get_runtime():
    """One event loop thread, store and pipeline shared by all sessions."""
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    settings = AuditSettings.from_env()
    store = SQLiteReportStore(settings.database_path)
    pipeline = AuditPipeline(store, settings)
    return loop, store, pipeline


loop, store, pipeline = get_runtime()


def _image_bytes(data_uri: str) -> bytes:
    """Decode a stored data URI for st.image."""
    return base64.b64decode(data_uri.split(",", 1)[-1])


def _reset():
    for key in list(st.session_state.keys()):
        if key.startswith("audit_"):
            st.session_state.pop(key, None)


# ---------------------------------------------------------------------------
# Section A: Submission
# ---------------------------------------------------------------------------

st.title("Website UX Audit")
st.caption("Page metrics plus a vision model review of header, main content and footer.")

if not st.session_state.get("audit_id"):
    url_tab, image_tab = st.tabs(["Audit a URL", "Audit a screenshot"])
    target = None

    with url_tab:
        with st.form("url_form"):
            url = st.text_input("Website URL", placeholder="https://example.com")
            if st.form_submit_button("Run Audit", type="primary"):
                try:
                    target = Target.from_url(url)
                except AuditError as e:
                    st.error(f"{e} {e.remediation}")

    with image_tab:
        with st.form("image_form"):
            upload = st.file_uploader("Screenshot", type=["png", "jpg", "jpeg", "webp"])
            if st.form_submit_button("Analyze Screenshot", type="primary"):
                if upload is None:
                    st.error("Choose an image first.")
                else:
                    try:
                        target = Target.from_image(upload.getvalue())
                    except AuditError as e:
                        st.error(f"{e} {e.remediation}")

    if target is not None:
        with st.spinner("Loading the page and taking screenshots..."):
            future = asyncio.run_coroutine_threadsafe(pipeline.start(target), loop)
            try:
                report_id, _report = future.result(timeout=START_TIMEOUT)
            except AuditError as e:
                st.session_state["audit_error"] = f"{e} {e.remediation}"
            except concurrent.futures.TimeoutError:
                future.cancel()
                st.session_state["audit_error"] = "Timed out while loading the page. Try again later."
            else:
                st.session_state["audit_id"] = report_id
        st.rerun()

# ---------------------------------------------------------------------------
# Section B: Progress polling (non-blocking, rerun-safe)
# ---------------------------------------------------------------------------

report_id = st.session_state.get("audit_id")
report = store.load(report_id) if report_id else None

if report_id and report is None:
    st.error("Report not found.")
    _reset()

if report is not None and report.status.stage != Stage.COMPLETED:
    st.progress(min(report.status.progress / 100, 0.99), text=f"{report.status.message}...")
    if report.screenshots.get("desktop"):
        st.image(_image_bytes(report.screenshots["desktop"]), caption="Desktop screenshot", width=480)
    time.sleep(POLL_SECONDS)
    st.rerun()

# ---------------------------------------------------------------------------
# Section C: Report display
# ---------------------------------------------------------------------------

if report is not None and report.status.stage == Stage.COMPLETED:
    analysis = report.analysis
    if report.error:
        st.warning(report.error)
    else:
        st.success("Audit complete")

    scores = report.category_scores
    if scores:
        cols = st.columns(len(scores))
        for col, (name, score) in zip(cols, scores.items()):
            col.metric(name.title(), f"{score}")

    shots = report.screenshots
    if shots:
        c1, c2 = st.columns([3, 1])
        if shots.get("desktop"):
            c1.image(_image_bytes(shots["desktop"]), caption="Desktop")
        if shots.get("mobile"):
            c2.image(_image_bytes(shots["mobile"]), caption="Mobile")

    if analysis is not None:
        if analysis.visual_description:
            st.subheader("What the model sees")
            st.write(analysis.visual_description)

        if analysis.issues:
            st.subheader(f"Issues ({len(analysis.issues)})")
            for issue in analysis.issues:
                label = f"[{issue.section}] " if issue.section else ""
                priority = f" ({issue.priority})" if issue.priority else ""
                with st.expander(f"{label}{issue.text[:90]}{priority}"):
                    st.write(issue.text)
                    if issue.recommendation:
                        st.markdown(f"**Recommendation:** {issue.recommendation}")
                    if issue.impact:
                        st.markdown(f"**Impact:** {issue.impact}")

        if analysis.suggestions:
            st.subheader(f"Suggestions ({len(analysis.suggestions)})")
            for suggestion in analysis.suggestions:
                st.markdown(f"**{suggestion.title}**")
                if suggestion.description:
                    st.write(suggestion.description)
                for step in suggestion.steps:
                    st.markdown(f"- {step}")

        if analysis.free_form_analysis:
            with st.expander("Full review"):
                st.markdown(analysis.free_form_analysis)

    if report.metrics is not None:
        with st.expander("Page metrics"):
            st.json(report.metrics.to_dict())

    st.download_button(
        "Download JSON Report",
        report.to_json(),
        file_name=f"ux-audit-{report.id[:8]}.json",
        mime="application/json",
    )

    if st.button("Run Another Audit"):
        _reset()
        st.rerun()

# Show error state
if st.session_state.get("audit_error") and not report_id:
    st.error(f"Last audit failed: {st.session_state['audit_error']}")
    if st.button("Clear Error and Try Again"):
        _reset()
        st.rerun()
