"""Streamlit operator dashboard for the StayBoard booking API."""

from __future__ import annotations

import datetime
import os
from typing import Any, Dict, List, Optional

import pandas as pd
import requests
import streamlit as st

# ==========================================
# Configuration & Constants
# ==========================================
API_BASE_URL = os.getenv("STAYBOARD_API_URL", "http://127.0.0.1:8000")

st.set_page_config(
    page_title="StayBoard",
    page_icon="🏨",
    layout="wide",
)

STATUS_COLOURS = {
    "tentative": "#f4d58d",
    "reserved": "#8ecae6",
    "checked_in": "#90be6d",
    "checked_out": "#cccccc",
}


# ==========================================
# API Helper Functions
# ==========================================
def _headers() -> Dict[str, str]:
    token = st.session_state.get("access_token")
    return {"Authorization": f"Bearer {token}"} if token else {}


def _get(path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
    try:
        response = requests.get(
            f"{API_BASE_URL}{path}",
            params=params,
            headers=_headers(),
            timeout=10,
        )
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        st.error(f"Request to {path} failed: {e}")
        return None


def _post(path: str, payload: Dict[str, Any]) -> Optional[Any]:
    try:
        response = requests.post(
            f"{API_BASE_URL}{path}",
            json=payload,
            headers=_headers(),
            timeout=15,
        )
        if response.status_code == 409:
            detail = response.json().get("detail", {})
            message = detail.get("message") if isinstance(detail, dict) else detail
            st.warning(f"Conflict: {message}")
            return None
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        st.error(f"Request to {path} failed: {e}")
        return None


def login(token: str) -> bool:
    try:
        response = requests.post(f"{API_BASE_URL}/login", json={"token": token}, timeout=5)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        st.error(f"Login failed: {e}")
        return False
    body = response.json()
    st.session_state["access_token"] = body["access_token"]
    st.session_state["user_id"] = body["user_id"]
    return True


# ==========================================
# UI Page Functions
# ==========================================
def render_overview_page(property_id: int, today: datetime.date) -> None:
    st.header("📊 Overview")
    summary = _get(f"/properties/{property_id}/dashboard", {"today": today.isoformat()})
    if not summary:
        return

    col1, col2, col3, col4 = st.columns(4)
    col1.metric(
        "Revenue (30 days)",
        f"{summary['total_revenue']:.2f}",
        delta=(
            f"{summary['revenue_change_pct']:.1f}%"
            if summary["revenue_change_pct"] is not None
            else None
        ),
    )
    col2.metric(
        "Bookings (30 days)",
        summary["total_bookings"],
        delta=(
            f"{summary['bookings_change_pct']:.1f}%"
            if summary["bookings_change_pct"] is not None
            else None
        ),
    )
    col3.metric("Occupancy today", f"{summary['occupancy_rate'] * 100:.0f}%")
    col4.metric("Monthly average", f"{summary['monthly_average_occupancy'] * 100:.0f}%")

    col5, col6, col7, col8 = st.columns(4)
    col5.metric("Arrivals", summary["arrivals_today"])
    col6.metric("Departures", summary["departures_today"])
    col7.metric("In house", summary["in_house"])
    col8.metric("Vacant rooms", summary["vacant_rooms"])

    trend = pd.DataFrame(summary["occupancy_trend"])
    if not trend.empty:
        st.write("### Occupancy trend")
        st.line_chart(trend.set_index("day")["rate"])

    recent = pd.DataFrame(summary["recent_bookings"])
    if not recent.empty:
        st.write("### Recent bookings")
        st.dataframe(
            recent[["reference_code", "guest_name", "room_id", "check_in", "check_out", "status"]],
            use_container_width=True,
        )


def _calendar_frame(calendar: Dict[str, Any]) -> pd.DataFrame:
    days: List[str] = calendar["days"]
    grid: Dict[str, List[str]] = {}
    for row in calendar["rows"]:
        cells = [""] * len(days)
        for segment in row["segments"]:
            booking = segment["booking"]
            for index in range(segment["start_index"], segment["start_index"] + segment["span"]):
                cells[index] = f"{booking['guest_name']} ({booking['status']})"
        grid[row["room"]["number"]] = cells
    return pd.DataFrame.from_dict(grid, orient="index", columns=days)


def _colour_cell(value: str) -> str:
    for status, colour in STATUS_COLOURS.items():
        if value.endswith(f"({status})"):
            return f"background-color: {colour}"
    return ""


def render_calendar_page(property_id: int, today: datetime.date) -> None:
    st.header("🗓️ Room Calendar")
    col1, col2 = st.columns(2)
    with col1:
        start = st.date_input("Start", today)
    with col2:
        days = st.slider("Days", 7, 31, 14)

    calendar = _get(
        f"/properties/{property_id}/calendar",
        {"start": start.isoformat(), "days": days},
    )
    if not calendar:
        return
    frame = _calendar_frame(calendar)
    if frame.empty:
        st.info("This property has no rooms yet.")
        return
    st.dataframe(frame.style.map(_colour_cell), use_container_width=True)


def render_booking_page(property_id: int, today: datetime.date) -> None:
    st.header("🛏️ New Booking")
    rooms = _get(f"/properties/{property_id}/rooms") or []
    room_labels = {room["number"]: room["room_id"] for room in rooms}

    with st.form("new_booking"):
        guest_name = st.text_input("Guest name")
        guest_email = st.text_input("Guest email")
        selected = st.multiselect("Rooms", list(room_labels))
        col1, col2 = st.columns(2)
        with col1:
            check_in = st.date_input("Check-in", today)
        with col2:
            check_out = st.date_input("Check-out", today + datetime.timedelta(days=1))
        status = st.selectbox("Status", ["reserved", "tentative", "checked_in"])
        hold_hours = st.number_input("Hold for (hours, tentative only)", min_value=1, value=24)
        total = st.number_input("Total", min_value=0.0, value=0.0)
        submitted = st.form_submit_button("Create booking", type="primary")

    if not submitted:
        return
    payload: Dict[str, Any] = {
        "room_ids": [room_labels[label] for label in selected],
        "guest_name": guest_name,
        "guest_email": guest_email or None,
        "check_in": check_in.isoformat(),
        "check_out": check_out.isoformat(),
        "status": status,
        "total": total or None,
    }
    if status == "tentative":
        release_at = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(hours=hold_hours)
        payload["auto_release_at"] = release_at.isoformat()
    created = _post(f"/properties/{property_id}/bookings", payload)
    if created:
        codes = ", ".join(booking["reference_code"] for booking in created)
        st.success(f"Created {len(created)} booking(s): {codes}")


def render_holds_page(property_id: int) -> None:
    st.header("⏳ Tentative Holds")
    holds = _get(f"/properties/{property_id}/holds") or []
    if holds:
        frame = pd.DataFrame(
            [
                {
                    "reference_code": hold["booking"]["reference_code"],
                    "guest_name": hold["booking"]["guest_name"],
                    "room_id": hold["booking"]["room_id"],
                    "auto_release_at": hold["booking"]["auto_release_at"],
                    "expired": hold["expired"],
                }
                for hold in holds
            ]
        )
        st.dataframe(frame, use_container_width=True)
    else:
        st.info("No tentative holds.")

    if st.button("Release expired holds", type="primary"):
        result = _post("/holds/release", {"property_id": property_id})
        if result is not None:
            st.success(f"Released {result['released_count']} hold(s)")


# ==========================================
# Main App Router
# ==========================================
def main() -> None:
    st.sidebar.title("StayBoard")
    st.sidebar.markdown("---")

    if "access_token" not in st.session_state:
        token = st.sidebar.text_input("Login token", type="password")
        if st.sidebar.button("Login") and token:
            login(token)

    properties = _get("/properties") or []
    if not properties:
        st.info("No properties available for this account.")
        return
    labels = {f"{prop['name']} ({prop['code'] or prop['property_id']})": prop for prop in properties}
    selected = st.sidebar.selectbox("Property", list(labels))
    property_id = labels[selected]["property_id"]
    today = st.sidebar.date_input("Reference day", datetime.date.today())

    page = st.sidebar.radio(
        "Navigation",
        ["Overview", "Calendar", "New Booking", "Holds"],
    )
    st.sidebar.markdown("---")
    st.sidebar.caption(f"API: {API_BASE_URL}")

    if page == "Overview":
        render_overview_page(property_id, today)
    elif page == "Calendar":
        render_calendar_page(property_id, today)
    elif page == "New Booking":
        render_booking_page(property_id, today)
    elif page == "Holds":
        render_holds_page(property_id)


if __name__ == "__main__":
    main()
