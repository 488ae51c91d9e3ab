#!/usr/bin/env python3
from __future__ import annotations

import io
import re
import tempfile
import zipfile
from pathlib import Path
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import pandas as pd
import requests
import streamlit as st

from ledger_doctor import __version__ as TOOL_VERSION
from ledger_doctor.config import load_config
from ledger_doctor.engine import build_check_report, build_structured_summary, check_structure, restore_structure
from ledger_doctor.issues import CRITICAL, STRUCTURAL, STYLE

WORKBOOK_EXTS = {".xlsx", ".xlsm"}
MAX_REMOTE_FILE_MB = 50
MAX_REMOTE_FILE_BYTES = MAX_REMOTE_FILE_MB * 1024 * 1024
CONTENT_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "application/vnd.ms-excel.sheet.macroenabled.12": ".xlsm",
}
ROW_RE = re.compile(r"^(?:[A-Z]+|Row )(\d+)")


def ensure_state() -> None:
    st.session_state.setdefault("results", [])


def normalize_public_url(raw_url: str) -> str:
    """Turn share links into direct downloads; Google Sheets links become xlsx exports."""
    parsed = urlparse(raw_url.strip())
    if not parsed.scheme:
        raise ValueError("URL must start with http:// or https://")

    host = parsed.netloc.lower()
    path = parsed.path
    query = parse_qs(parsed.query, keep_blank_values=True)

    if host == "docs.google.com":
        sheet_match = re.search(r"/spreadsheets/d/([^/]+)", path)
        if sheet_match:
            return f"https://docs.google.com/spreadsheets/d/{sheet_match.group(1)}/export?format=xlsx"

    if host == "drive.google.com":
        match = re.search(r"/file/d/([^/]+)", path)
        if match:
            return f"https://drive.google.com/uc?export=download&id={match.group(1)}"
        if "id" in query:
            return f"https://drive.google.com/uc?export=download&id={query['id'][0]}"

    if host == "github.com" and "/blob/" in path:
        owner_repo, blob_path = path.lstrip("/").split("/blob/", 1)
        return f"https://raw.githubusercontent.com/{owner_repo}/{blob_path}"

    if "dropbox.com" in host:
        query["dl"] = ["1"]
        return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

    if host.endswith("1drv.ms") or "onedrive.live.com" in host:
        query["download"] = ["1"]
        return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

    return raw_url.strip()


def workbook_extension(raw_url: str, response: requests.Response, content: bytes) -> str:
    ext = Path(urlparse(response.url or raw_url).path).suffix.lower()
    if ext in WORKBOOK_EXTS:
        return ext
    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in CONTENT_TYPES:
        return CONTENT_TYPES[content_type]
    if content.startswith(b"PK"):
        try:
            with zipfile.ZipFile(io.BytesIO(content)) as archive:
                names = set(archive.namelist())
        except zipfile.BadZipFile:
            return ""
        if "xl/vbaProject.bin" in names:
            return ".xlsm"
        if "xl/workbook.xml" in names:
            return ".xlsx"
    return ""


def fetch_remote_workbook(raw_url: str, folder: Path) -> Path:
    url = normalize_public_url(raw_url)
    response = requests.get(url, timeout=60, allow_redirects=True, stream=True)
    try:
        response.raise_for_status()
        chunks: list[bytes] = []
        downloaded = 0
        for chunk in response.iter_content(chunk_size=1024 * 1024):
            if not chunk:
                continue
            downloaded += len(chunk)
            if downloaded > MAX_REMOTE_FILE_BYTES:
                raise ValueError(f"Remote file is larger than {MAX_REMOTE_FILE_MB} MB.")
            chunks.append(chunk)
        content = b"".join(chunks)
    finally:
        response.close()

    ext = workbook_extension(raw_url, response, content)
    if ext not in WORKBOOK_EXTS:
        raise ValueError("The URL did not return an .xlsx or .xlsm workbook.")
    target = folder / f"remote_ledger{ext}"
    target.write_bytes(content)
    return target


def issues_frame(issues: list[dict]) -> pd.DataFrame:
    """Issues as a table, grouped by sheet row (sheet-level findings first)."""
    columns = ["row", "location", "category", "code", "message"]
    if not issues:
        return pd.DataFrame(columns=columns)
    frame = pd.DataFrame(issues)
    rows = frame["location"].map(lambda location: ROW_RE.match(location or ""))
    frame["row"] = rows.map(lambda match: int(match.group(1)) if match else 0)
    return frame.sort_values(["row", "location"], kind="stable")[columns].reset_index(drop=True)


def process_workbook(path: Path, display_name: str, *, restore: bool) -> dict:
    config = load_config()
    report = build_check_report(path, check_structure(path, config))
    item = {"name": display_name, "report": report, "summary": None, "download_bytes": None}
    if restore and not report["summary"]["counts"][CRITICAL]:
        output_path = path.with_name(f"{path.stem}_restored{path.suffix}")
        item["summary"] = build_structured_summary(restore_structure(path, output_path, config))
        item["download_bytes"] = output_path.read_bytes()
        item["download_name"] = f"{Path(display_name).stem}_restored{path.suffix}"
    return item


def collect_results(upload, raw_url: str, restore: bool) -> list[dict]:
    results = []
    with tempfile.TemporaryDirectory() as tmpdir:
        folder = Path(tmpdir)
        if upload is not None:
            path = folder / Path(upload.name).name
            path.write_bytes(upload.getvalue())
            results.append(process_workbook(path, upload.name, restore=restore))
        if raw_url.strip():
            try:
                path = fetch_remote_workbook(raw_url, folder)
            except (requests.RequestException, ValueError) as exc:
                results.append({"name": raw_url.strip(), "error": str(exc)})
            else:
                results.append(process_workbook(path, path.name, restore=restore))
    return results


def render_result(item: dict) -> None:
    if item.get("error"):
        st.error(f"{item['name']}: {item['error']}")
        return
    summary = item["report"]["summary"]
    counts = summary["counts"]
    with st.expander(f"{item['name']}  •  {'CLEAN' if summary['ok'] else 'ISSUES'}", expanded=True):
        metrics = st.columns(3)
        metrics[0].metric("Critical", counts[CRITICAL])
        metrics[1].metric("Structural", counts[STRUCTURAL])
        metrics[2].metric("Style", counts[STYLE])
        if summary["ok"]:
            st.success("The ledger matches the expected structure and presentation.")
        else:
            st.dataframe(issues_frame(item["report"]["issues"]), width="stretch", hide_index=True)
        restore_summary = item.get("summary")
        if restore_summary:
            totals = restore_summary["before_after_issue_summary"]["issue_counts"]["total"]
            st.caption(f"Restore: {totals['before']} -> {totals['after']} issue(s)")
            for warning in restore_summary.get("warnings", []):
                st.warning(warning)
        if item.get("download_bytes"):
            st.download_button(
                "Download restored workbook",
                data=item["download_bytes"],
                file_name=item["download_name"],
                mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
                width="stretch",
                key=f"download_{item['name']}",
            )


def main() -> None:
    st.set_page_config(page_title="ledger-doctor", page_icon="📒", layout="wide", initial_sidebar_state="collapsed")
    ensure_state()

    st.title("ledger-doctor")
    st.caption(f"Check a grouped financial ledger and download a restored copy. v{TOOL_VERSION}")

    upload = st.file_uploader("Upload a ledger workbook", type=[ext.lstrip(".") for ext in sorted(WORKBOOK_EXTS)])
    raw_url = st.text_input("Or paste a public workbook URL", placeholder="Google Sheets share links are exported as .xlsx")
    st.caption(f"Public URL mode makes outbound network requests and rejects remote files above {MAX_REMOTE_FILE_MB} MB.")
    restore = st.toggle("Restore presentation after checking", value=True)

    if st.button("Run", type="primary", width="stretch", disabled=upload is None and not raw_url.strip()):
        with st.spinner("Checking ledger..."):
            st.session_state["results"] = collect_results(upload, raw_url, restore)

    for item in st.session_state["results"]:
        render_result(item)


if __name__ == "__main__":
    main()
