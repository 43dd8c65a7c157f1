"""Streamlit dashboard showing the watermark, the next planned run and run history.

Run with:
  pip install -e ".[dashboard]"
  streamlit run dashboard/streamlit_app.py
"""
from __future__ import annotations

import os
import requests
import pandas as pd
import streamlit as st

API_URL = os.environ.get("API_URL", "http://localhost:8000")

st.title("Bookmark Pipeline")

st.header("Watermark")
resp = requests.get(f"{API_URL}/watermark", timeout=30)
if resp.status_code == 200:
    wm = resp.json()
    if wm["present"]:
        st.metric("Newest processed bookmark", wm["added_at"], help=f"{wm['store']} = {wm['value']}")
    else:
        st.write(f"No watermark in {wm['store']}; the next run is a backfill")
else:
    st.error(f"API error: {resp.status_code} {resp.text}")

st.header("Next run")
resp2 = requests.get(f"{API_URL}/plan", timeout=60)
if resp2.status_code == 200:
    plan = resp2.json()
    st.write(f"Mode: **{plan['mode']}**, commit value: {plan['commit_value']}")
    if plan["mode"] == "incremental" and plan["dropped"]:
        st.warning(f"{plan['dropped']} bookmarks exceed the batch ceiling and will be dropped")
    elif plan["dropped"]:
        st.info(f"{plan['dropped']} older bookmarks are outside the backfill window")
    if plan["deferred"]:
        st.info(f"{plan['deferred']} bookmarks are deferred to later runs")
    bdf = pd.DataFrame(plan["batches"])
    if not bdf.empty:
        st.table(bdf[["index", "size", "timestamp"]])
    else:
        st.write("Nothing new to process")
else:
    st.error(f"API error: {resp2.status_code} {resp2.text}")

st.header("Run history")
resp3 = requests.get(f"{API_URL}/runs", params={"limit": 50}, timeout=30)
if resp3.status_code == 200:
    rdf = pd.DataFrame(resp3.json())
    if not rdf.empty:
        rdf["finished_at"] = pd.to_datetime(rdf["finished_at"])
        st.line_chart(rdf.set_index("finished_at")["processed_records"])
        st.table(rdf[["finished_at", "mode", "processed_batches", "failed_batches", "committed", "watermark"]])
    else:
        st.write("No runs recorded")
elif resp3.status_code == 404:
    st.write("Run history is not configured")
else:
    st.error(f"API error: {resp3.status_code} {resp3.text}")
